from typing import Any, Dict, List

from ..errors import ValueDecodeError
from ..utils import parse_date, tag_of

MAX_CELL_LENGTH = 50

PRIORITY_FIELDS = [
    "_id", "name", "title", "email", "username",
    "createdAt", "updatedAt", "created_at", "updated_at",
]


def format_cell(value: Any, field: str = "") -> Dict[str, str]:
    """Classify a transport value for table display.

    Only the returned text is shortened; the value itself is left untouched.
    """
    if value is None:
        return {"kind": "null", "text": "null"}

    tag = tag_of(value)
    if tag == "$oid":
        return {"kind": "id", "text": str(value["$oid"])}
    if tag == "$date":
        try:
            text = parse_date(value["$date"]).strftime("%Y-%m-%d %H:%M:%S")
        except ValueDecodeError:
            text = str(value["$date"])
        return {"kind": "date", "text": text}
    if tag == "$timestamp":
        ts = value["$timestamp"]
        return {"kind": "value", "text": f"Timestamp({ts.get('t')}, {ts.get('i')})"}
    if tag is not None:
        return {"kind": "value", "text": str(value[tag])}

    if isinstance(value, list):
        return {"kind": "array", "text": f"[{len(value)} items]"}
    if isinstance(value, dict):
        return {"kind": "object", "text": "{...}"}
    if isinstance(value, str):
        if len(value) > MAX_CELL_LENGTH:
            return {"kind": "string", "text": value[:MAX_CELL_LENGTH] + "..."}
        return {"kind": "string", "text": value}
    if isinstance(value, bool):
        return {"kind": "value", "text": "true" if value else "false"}
    return {"kind": "value", "text": str(value)}


def extract_columns(doc: Dict[str, Any], max_fields: int = 5) -> List[str]:
    """Pick table columns: well-known fields first, then document order."""
    if not isinstance(doc, dict) or not doc:
        return ["_id"]
    known = [f for f in PRIORITY_FIELDS if f in doc]
    rest = [f for f in doc if f not in PRIORITY_FIELDS]
    return (known + rest)[:max_fields]


def document_id_text(doc: Dict[str, Any]) -> Any:
    _id = doc.get("_id")
    if tag_of(_id) == "$oid":
        return _id["$oid"]
    return _id


def build_row(doc: Dict[str, Any], columns: List[str]) -> Dict[str, Any]:
    return {
        "id": document_id_text(doc),
        "cells": {field: format_cell(doc.get(field), field) for field in columns},
        "extraFields": max(0, len(doc) - len(columns)),
    }


def build_table(docs: List[Dict[str, Any]], max_fields: int = 5) -> Dict[str, Any]:
    """Columns come from the first document of the page."""
    columns = extract_columns(docs[0], max_fields) if docs else ["_id"]
    return {"columns": columns, "rows": [build_row(d, columns) for d in docs]}
