import base64
import binascii
import math
import re
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from decimal import InvalidOperation
from typing import Any, Dict, Optional

from bson import ObjectId
from bson.binary import Binary
from bson.decimal128 import Decimal128
from bson.errors import InvalidId
from bson.int64 import Int64
from bson.timestamp import Timestamp

from .errors import ValueDecodeError

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Largest integer a JavaScript client can hold without losing precision
JS_MAX_SAFE_INTEGER = 2 ** 53 - 1

TAG_KEYSETS = {
    frozenset(["$oid"]): "$oid",
    frozenset(["$date"]): "$date",
    frozenset(["$numberDecimal"]): "$numberDecimal",
    frozenset(["$numberLong"]): "$numberLong",
    frozenset(["$numberDouble"]): "$numberDouble",
    frozenset(["$binary"]): "$binary",
    frozenset(["$binary", "$type"]): "$binary",
    frozenset(["$timestamp"]): "$timestamp",
}


def tag_of(value: Any) -> Optional[str]:
    """Return the tag name when value is a tagged transport object, else None."""
    if isinstance(value, dict) and 0 < len(value) <= 2:
        return TAG_KEYSETS.get(frozenset(value.keys()))
    return None


def format_date(value: datetime) -> str:
    """ISO-8601 in UTC at millisecond precision, e.g. 2024-01-31T12:00:00.000Z."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return "%04d-%02d-%02dT%02d:%02d:%02d.%03dZ" % (
        value.year, value.month, value.day,
        value.hour, value.minute, value.second,
        value.microsecond // 1000,
    )


def parse_date(raw: Any) -> datetime:
    if isinstance(raw, dict) and tag_of(raw) == "$numberLong":
        raw = _parse_long(raw["$numberLong"])
    if isinstance(raw, bool):
        raise ValueDecodeError(f"Invalid $date value: {raw!r}")
    if isinstance(raw, (int, float)):
        return EPOCH + timedelta(milliseconds=raw)
    if not isinstance(raw, str):
        raise ValueDecodeError(f"Invalid $date value: {raw!r}")
    text = raw.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise ValueDecodeError(f"Invalid $date value: {raw!r}") from e
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _parse_long(raw: Any) -> Int64:
    if isinstance(raw, bool):
        raise ValueDecodeError(f"Invalid $numberLong value: {raw!r}")
    try:
        return Int64(int(raw))
    except (TypeError, ValueError) as e:
        raise ValueDecodeError(f"Invalid $numberLong value: {raw!r}") from e


def serialize(obj: Any) -> Any:
    """Recursively convert native Mongo values into tagged, JSON-safe values."""
    if obj is None or isinstance(obj, (bool, str)):
        return obj
    if isinstance(obj, float):
        # JSON has no NaN or infinities
        if math.isnan(obj):
            return {"$numberDouble": "NaN"}
        if math.isinf(obj):
            return {"$numberDouble": "Infinity" if obj > 0 else "-Infinity"}
        return obj
    if isinstance(obj, Int64):
        return {"$numberLong": str(int(obj))}
    if isinstance(obj, int):
        if abs(obj) > JS_MAX_SAFE_INTEGER:
            return {"$numberLong": str(obj)}
        return obj
    if isinstance(obj, ObjectId):
        return {"$oid": str(obj)}
    if isinstance(obj, datetime):
        return {"$date": format_date(obj)}
    if isinstance(obj, Decimal128):
        return {"$numberDecimal": str(obj)}
    if isinstance(obj, Binary):
        return {
            "$binary": base64.b64encode(bytes(obj)).decode("ascii"),
            "$type": "%02x" % obj.subtype,
        }
    if isinstance(obj, bytes):
        return {"$binary": base64.b64encode(obj).decode("ascii"), "$type": "00"}
    if isinstance(obj, Timestamp):
        return {"$timestamp": {"t": obj.time, "i": obj.inc}}
    if isinstance(obj, Mapping):
        return {k: serialize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [serialize(i) for i in obj]
    # Unknown object: keep what can be read from it
    attrs = getattr(obj, "__dict__", None)
    if attrs:
        return {k: serialize(v) for k, v in attrs.items() if not k.startswith("_")}
    return str(obj)


# Routes historically call the serializer by this name
to_jsonable = serialize


def parse(obj: Any) -> Any:
    """Recursively rebuild native Mongo values from their tagged transport form."""
    if isinstance(obj, list):
        return [parse(i) for i in obj]
    if not isinstance(obj, dict):
        return obj

    tag = tag_of(obj)
    if tag is None:
        return {k: parse(v) for k, v in obj.items()}

    raw = obj[tag]
    if tag == "$oid":
        try:
            return ObjectId(raw)
        except (InvalidId, TypeError) as e:
            raise ValueDecodeError(f"Invalid ObjectId: {raw!r}") from e
    if tag == "$date":
        return parse_date(raw)
    if tag == "$numberDecimal":
        try:
            return Decimal128(str(raw))
        except (InvalidOperation, ValueError, TypeError) as e:
            raise ValueDecodeError(f"Invalid $numberDecimal value: {raw!r}") from e
    if tag == "$numberLong":
        return _parse_long(raw)
    if tag == "$numberDouble":
        return _parse_double(raw)
    if tag == "$binary":
        return _parse_binary(raw, obj.get("$type", "00"))
    if tag == "$timestamp":
        if not isinstance(raw, dict):
            raise ValueDecodeError(f"Invalid $timestamp value: {raw!r}")
        try:
            return Timestamp(int(raw["t"]), int(raw["i"]))
        except (KeyError, TypeError, ValueError) as e:
            raise ValueDecodeError(f"Invalid $timestamp value: {raw!r}") from e
    raise ValueDecodeError(f"Unsupported tag: {tag}")


_SPECIAL_DOUBLES = {"NaN": math.nan, "Infinity": math.inf, "-Infinity": -math.inf}

DECIMAL_TEXT_RE = re.compile(r"[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?", re.ASCII)


def _parse_double(raw: Any) -> float:
    if isinstance(raw, str):
        if raw in _SPECIAL_DOUBLES:
            return _SPECIAL_DOUBLES[raw]
        if DECIMAL_TEXT_RE.fullmatch(raw):
            return float(raw)
    raise ValueDecodeError(f"Invalid $numberDouble value: {raw!r}")


def parse_document(obj: Any) -> Dict[str, Any]:
    """parse() for values that must come back as a document."""
    doc = parse(obj)
    if not isinstance(doc, dict):
        raise ValueDecodeError("Expected a JSON object, not a single tagged value")
    return doc


def _parse_binary(raw: Any, subtype: Any) -> Any:
    # Canonical extended JSON nests payload and subtype
    if isinstance(raw, dict):
        subtype = raw.get("subType", "00")
        raw = raw.get("base64")
    try:
        data = base64.b64decode(raw, validate=True)
        subtype_num = int(subtype, 16) if isinstance(subtype, str) else int(subtype)
    except (binascii.Error, TypeError, ValueError) as e:
        raise ValueDecodeError(f"Invalid $binary value: {raw!r}") from e
    if subtype_num == 0:
        return data
    return Binary(data, subtype_num)


def to_document_id(raw: str) -> Any:
    """Use an ObjectId when raw looks like one, otherwise keep the raw string."""
    if ObjectId.is_valid(raw):
        return ObjectId(raw)
    return raw


def mask_connection_string(uri: Optional[str]) -> str:
    """Hide the password part of a mongodb:// URI for logging."""
    if not uri:
        return ""
    scheme, sep, rest = uri.partition("://")
    if not sep or "@" not in rest:
        return uri
    creds, _, host = rest.rpartition("@")
    user = creds.split(":", 1)[0]
    return f"{scheme}://{user}:****@{host}"
