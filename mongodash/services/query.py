"""
Filter, free-text search and cursor continuation for collection browsing.

Pages are ordered by ``createdAt`` descending with ``_id`` descending as a
tie-breaker. A cursor carries the sort key of the last row of a page and is
only meaningful for the filter and search it was issued with.
"""
import json
import logging
import math
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from bson import ObjectId
from bson.binary import Binary
from bson.decimal128 import Decimal128
from bson.timestamp import Timestamp
from pymongo import DESCENDING
from pymongo.errors import PyMongoError

from ..errors import ValueDecodeError
from ..utils import (
    DECIMAL_TEXT_RE,
    format_date,
    parse,
    parse_date,
    parse_document,
    serialize,
    tag_of,
    to_document_id,
)

logger = logging.getLogger(__name__)

SORT_ORDER = [("createdAt", DESCENDING), ("_id", DESCENDING)]

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100

COMMON_SEARCH_FIELDS = [
    "_id", "name", "title", "description", "email", "username", "text",
    "content", "message", "value", "label", "type", "status", "category",
    "tags", "notes", "comment", "address", "phone", "url", "link", "id",
    "code", "key",
]

NUMERIC_SEARCH_FIELDS = [
    "id", "count", "quantity", "price", "amount", "score", "rating", "age",
    "year", "month", "day", "index", "order",
]

_EXTENDED_TYPES = (ObjectId, Decimal128, Binary, bytes, Timestamp)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def extract_searchable_fields(obj: Any, prefix: str = "", fields: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Collect dot paths of scalar fields, mapped to "string", "number" or "date".

    Sub-documents and arrays are walked; extended types and tagged wrappers
    are skipped.
    """
    if fields is None:
        fields = {}
    if obj is None:
        return fields

    if isinstance(obj, list):
        for item in obj:
            if isinstance(item, str) or _is_number(item):
                if prefix:
                    fields.setdefault(prefix, "number" if _is_number(item) else "string")
            elif isinstance(item, dict):
                extract_searchable_fields(item, prefix, fields)
        return fields

    if isinstance(obj, dict):
        if tag_of(obj):
            return fields
        for key, value in obj.items():
            path = f"{prefix}.{key}" if prefix else key
            if isinstance(value, str):
                fields.setdefault(path, "string")
            elif _is_number(value):
                fields.setdefault(path, "number")
            elif isinstance(value, datetime):
                fields.setdefault(path, "date")
            elif isinstance(value, _EXTENDED_TYPES):
                continue
            elif isinstance(value, (dict, list)):
                extract_searchable_fields(value, path, fields)
    return fields


def parse_search_number(term: str) -> Optional[float]:
    term = term.strip()
    if not DECIMAL_TEXT_RE.fullmatch(term):
        return None
    number = float(term)
    if not math.isfinite(number):
        return None
    if number.is_integer() and re.fullmatch(r"[+-]?\d+", term):
        return int(term)
    return number


def build_search_query(term: str, sample_doc: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Build an ``$or`` of case-insensitive "contains" conditions for term."""
    regex = {"$regex": re.escape(term), "$options": "i"}
    number = parse_search_number(term)

    detected = extract_searchable_fields(sample_doc) if sample_doc else {}

    conditions: List[Dict[str, Any]] = []
    seen = set()
    for field in list(detected) + COMMON_SEARCH_FIELDS:
        if field in seen:
            continue
        seen.add(field)
        conditions.append({field: regex})

    if number is not None:
        numeric_fields = [f for f, kind in detected.items() if kind == "number"]
        for field in numeric_fields + [f for f in NUMERIC_SEARCH_FIELDS if f not in numeric_fields]:
            conditions.append({field: number})

    return {"$or": conditions}


def parse_filter(raw: Optional[str]) -> Dict[str, Any]:
    if raw is None or not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except ValueError as e:
        raise ValueDecodeError(f"Invalid filter JSON: {e}") from e
    if not isinstance(data, dict):
        raise ValueDecodeError("Filter must be a JSON object")
    return parse_document(data)


def encode_cursor(doc: Dict[str, Any]) -> str:
    """Cursor for the row after doc.

    ObjectId keys are written as bare hex; any other ``_id`` is written in
    tagged form so it keeps its type.
    """
    created_at = doc.get("createdAt")
    if isinstance(created_at, datetime):
        created_at = format_date(created_at)
    elif created_at is not None and not isinstance(created_at, (str, int, float)):
        created_at = str(created_at)
    _id = doc["_id"]
    return json.dumps({"createdAt": created_at, "_id": str(_id) if isinstance(_id, ObjectId) else serialize(_id)})


def _decode_cursor_id(raw: Any) -> Any:
    if isinstance(raw, str):
        return to_document_id(raw)
    if _is_number(raw) or isinstance(raw, dict):
        try:
            return parse(raw)
        except ValueDecodeError as e:
            raise ValueDecodeError("Invalid cursor") from e
    raise ValueDecodeError("Invalid cursor")


def decode_cursor(token: str) -> Dict[str, Any]:
    """Parse a cursor issued by encode_cursor into its sort key values."""
    try:
        data = json.loads(token)
    except ValueError as e:
        raise ValueDecodeError("Invalid cursor") from e
    if not isinstance(data, dict) or set(data.keys()) != {"createdAt", "_id"}:
        raise ValueDecodeError("Invalid cursor")

    last_id = _decode_cursor_id(data["_id"])
    created_at = data["createdAt"]
    if isinstance(created_at, str):
        try:
            created_at = parse_date(created_at)
        except ValueDecodeError:
            pass
    elif created_at is not None and not _is_number(created_at):
        raise ValueDecodeError("Invalid cursor")

    return {"createdAt": created_at, "_id": last_id}


def build_cursor_condition(token: str) -> Dict[str, Any]:
    key = decode_cursor(token)
    created_at = key["createdAt"]
    last_id = key["_id"]
    if created_at is None:
        # Rows without createdAt come last in a descending sort
        return {"createdAt": None, "_id": {"$lt": last_id}}
    return {
        "$or": [
            {"createdAt": {"$lt": created_at}},
            {"createdAt": created_at, "_id": {"$lt": last_id}},
            {"createdAt": None},
        ]
    }


def combine_conditions(conditions: List[Dict[str, Any]]) -> Dict[str, Any]:
    present = [c for c in conditions if c]
    if not present:
        return {}
    if len(present) == 1:
        return present[0]
    return {"$and": present}


def clamp_page_size(limit: Optional[int], default: int = DEFAULT_PAGE_SIZE, maximum: int = MAX_PAGE_SIZE) -> int:
    if limit is None or limit < 1:
        return default
    return min(limit, maximum)


async def load_search_sample(collection) -> Optional[Dict[str, Any]]:
    try:
        return await collection.find_one({}, {"_id": 0})
    except PyMongoError as e:
        logger.warning("Could not sample %s for search fields: %s", collection.name, e)
        return None


async def build_query(
    collection,
    filter_text: Optional[str] = None,
    search: Optional[str] = None,
    cursor: Optional[str] = None,
) -> Dict[str, Any]:
    conditions: List[Dict[str, Any]] = [parse_filter(filter_text)]
    if search and search.strip():
        sample = await load_search_sample(collection)
        conditions.append(build_search_query(search.strip(), sample))
    if cursor:
        conditions.append(build_cursor_condition(cursor))
    return combine_conditions(conditions)


async def fetch_page(
    collection,
    filter_text: Optional[str] = None,
    search: Optional[str] = None,
    cursor: Optional[str] = None,
    limit: Optional[int] = None,
    max_page_size: int = MAX_PAGE_SIZE,
) -> Dict[str, Any]:
    """Fetch one page of native documents plus continuation info."""
    page_size = clamp_page_size(limit, maximum=max_page_size)
    query = await build_query(collection, filter_text, search, cursor)

    # One extra row tells whether another page exists
    docs = await collection.find(query).sort(SORT_ORDER).limit(page_size + 1).to_list(length=page_size + 1)
    has_more = len(docs) > page_size
    if has_more:
        docs = docs[:page_size]

    next_cursor = encode_cursor(docs[-1]) if has_more and docs else None
    total = await collection.estimated_document_count()
    return {
        "documents": docs,
        "nextCursor": next_cursor,
        "hasMore": has_more,
        "totalCount": total,
    }
