"""
Sample-based schema inference for schemaless collections.

The result drives a dynamic edit form and is only an approximation: it is
recomputed on every request from a bounded sample and never enforced.
"""
import math
import re
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List

from bson import ObjectId
from bson.decimal128 import Decimal128

from ..utils import format_date, tag_of

DEFAULT_SAMPLE_SIZE = 100

# Resolution order doubles as tie-break priority
TYPE_PRIORITY = ["string", "number", "boolean", "date", "array", "object"]

ENUM_MAX_VALUES = 10
ENUM_MIN_COVERAGE = 0.8
MAX_EXAMPLES = 5

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}(T\d{2}:\d{2}:\d{2}.*)?$")


def is_date_string(value: str) -> bool:
    return bool(_DATE_RE.match(value))


def _new_stats() -> Dict[str, Any]:
    return {
        "present": 0,
        "nulls": 0,
        "strings": [],
        "numbers": [],
        "booleans": [],
        "dates": [],
        "arrays": [],
        "objects": 0,
        "item_types": [],
    }


def _item_type(item: Any) -> str:
    if isinstance(item, str):
        return "string"
    if isinstance(item, bool):
        return "boolean"
    if isinstance(item, (int, float)):
        return "number"
    return "object"


def analyze_document(doc: Dict[str, Any], stats: Dict[str, Dict[str, Any]], prefix: str = "") -> None:
    """Accumulate per-path statistics for one document into stats."""
    for key, value in doc.items():
        if key == "_id":
            continue
        path = f"{prefix}.{key}" if prefix else key
        s = stats.setdefault(path, _new_stats())

        if value is None:
            s["nulls"] += 1
            continue
        s["present"] += 1

        tag = tag_of(value)
        if isinstance(value, str):
            s["strings"].append(value)
            if is_date_string(value):
                s["dates"].append(value)
        elif isinstance(value, bool):
            s["booleans"].append(value)
        elif isinstance(value, (int, float)):
            s["numbers"].append(int(value) if isinstance(value, int) else value)
        elif isinstance(value, Decimal128):
            s["numbers"].append(float(value.to_decimal()))
        elif isinstance(value, datetime):
            s["dates"].append(format_date(value))
        elif isinstance(value, ObjectId):
            s["strings"].append(str(value))
        elif tag == "$date":
            s["dates"].append(value["$date"])
        elif tag == "$oid":
            s["strings"].append(value["$oid"])
        elif isinstance(value, list):
            s["arrays"].append(len(value))
            for item in value:
                t = _item_type(item)
                if t not in s["item_types"]:
                    s["item_types"].append(t)
        elif isinstance(value, dict) and tag is None:
            s["objects"] += 1
            analyze_document(value, stats, path)


def determine_type(s: Dict[str, Any]) -> str:
    counts = {
        "string": len(s["strings"]),
        "number": len(s["numbers"]),
        "boolean": len(s["booleans"]),
        "date": len(s["dates"]),
        "array": len(s["arrays"]),
        "object": s["objects"],
    }
    primary = "string"
    best = 0
    for t in TYPE_PRIORITY:
        if counts[t] > best:
            best = counts[t]
            primary = t
    return primary


def detect_enum(strings: List[str]) -> List[str]:
    """Return the recurring values when they look like a closed set, else []."""
    if not strings:
        return []
    occurrences: Dict[str, int] = defaultdict(int)
    for v in strings:
        occurrences[v] += 1
    recurring = [v for v, n in occurrences.items() if n >= 2]
    if not 0 < len(recurring) <= ENUM_MAX_VALUES:
        return []
    covered = sum(occurrences[v] for v in recurring)
    if covered / len(strings) < ENUM_MIN_COVERAGE:
        return []
    return recurring


def _unique_examples(values: List[Any], limit: int = MAX_EXAMPLES) -> List[Any]:
    out: List[Any] = []
    for v in values:
        if v not in out:
            out.append(v)
        if len(out) >= limit:
            break
    return out


def build_field_schema(s: Dict[str, Any], total: int) -> Dict[str, Any]:
    all_values = (
        list(s["strings"])
        + list(s["numbers"])
        + ["true" if b else "false" for b in s["booleans"]]
        + list(s["dates"])
    )
    field: Dict[str, Any] = {
        "type": determine_type(s),
        "nullable": s["nulls"] > 0,
        "presence": s["present"] / total,
        "examples": _unique_examples(all_values),
    }

    if field["type"] == "string":
        enum = detect_enum(s["strings"])
        if enum:
            field["type"] = "enum"
            field["enum"] = enum

    if field["type"] == "date":
        field["format"] = "datetime-local"
    elif field["type"] == "boolean":
        field["default"] = False
    elif field["type"] == "number":
        finite = [n for n in s["numbers"] if math.isfinite(n)]
        if finite:
            field["min"] = min(finite)
            field["max"] = max(finite)
    elif field["type"] == "array" and len(s["item_types"]) == 1:
        field["items"] = {"type": s["item_types"][0]}
    return field


def build_field_tree(flat: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
    """Nest dot-path schemas into a ``fields`` tree.

    A parent that was recorded as a leaf is replaced by an empty object node
    when a deeper path arrives under it; the leaf facets are dropped.
    """
    tree: Dict[str, Any] = {}
    for path, field in flat.items():
        parts = path.split(".")
        current = tree
        for part in parts[:-1]:
            node = current.get(part)
            if node is None or node.get("type") != "object" or "fields" not in node:
                node = {"type": "object", "fields": {}}
                current[part] = node
            current = node["fields"]
        current[parts[-1]] = field
    return tree


def infer_from_documents(docs: List[Dict[str, Any]]) -> Dict[str, Any]:
    if not docs:
        return {"fields": {}, "isEmpty": True}

    stats: Dict[str, Dict[str, Any]] = {}
    for doc in docs:
        analyze_document(doc, stats)

    flat = {path: build_field_schema(s, len(docs)) for path, s in stats.items()}
    return {"fields": build_field_tree(flat), "isEmpty": False}


async def infer_schema(collection, sample_size: int = DEFAULT_SAMPLE_SIZE) -> Dict[str, Any]:
    """Sample up to sample_size documents of collection and infer a field tree."""
    limit = max(1, sample_size)
    docs = await collection.find({}).limit(limit).to_list(length=limit)
    return infer_from_documents(docs)
