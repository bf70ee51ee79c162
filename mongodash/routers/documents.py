from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query
from pymongo.errors import PyMongoError

from ..config import Settings
from ..dependencies import get_app_settings, get_client
from ..errors import NotFoundError, StoreError
from ..services.query import fetch_page
from ..services.references import resolve_references
from ..services.table import build_table
from ..utils import parse_document, to_document_id, to_jsonable

router = APIRouter(tags=["documents"])


@router.get("/{db}/{collection}")
async def list_documents(
    db: str,
    collection: str,
    limit: Optional[int] = Query(None),
    cursor: Optional[str] = Query(None),
    filter_text: Optional[str] = Query(None, alias="filter"),
    search: Optional[str] = Query(None),
    table: bool = Query(False),
    client=Depends(get_client),
    settings: Settings = Depends(get_app_settings),
):
    """Newest-first page of documents; follow ``nextCursor`` for the next page."""
    try:
        page = await fetch_page(
            client[db][collection],
            filter_text=filter_text,
            search=search,
            cursor=cursor,
            limit=limit if limit is not None else settings.default_page_size,
            max_page_size=settings.max_page_size,
        )
    except PyMongoError as e:
        raise StoreError(str(e)) from e

    documents = [to_jsonable(doc) for doc in page["documents"]]
    result: Dict[str, Any] = {
        "documents": documents,
        "nextCursor": page["nextCursor"],
        "hasMore": page["hasMore"],
        "totalCount": page["totalCount"],
    }
    if table:
        result.update(build_table(documents))
    return result


@router.get("/{db}/{collection}/{doc_id}")
async def get_document(db: str, collection: str, doc_id: str, client=Depends(get_client)):
    try:
        doc = await client[db][collection].find_one({"_id": to_document_id(doc_id)})
    except PyMongoError as e:
        raise StoreError(str(e)) from e
    if not doc:
        raise NotFoundError()
    return {"document": to_jsonable(doc)}


@router.get("/{db}/{collection}/{doc_id}/references")
async def get_document_references(
    db: str,
    collection: str,
    doc_id: str,
    max_collections: Optional[int] = Query(None, alias="maxCollections", ge=1, le=200),
    max_depth: Optional[int] = Query(None, alias="maxDepth", ge=1, le=10),
    client=Depends(get_client),
    settings: Settings = Depends(get_app_settings),
):
    """Look up the documents that ObjectId fields of a document point at.

    Best effort: ids that cannot be matched are only counted in ``unresolved``.
    """
    database = client[db]
    try:
        doc = await database[collection].find_one({"_id": to_document_id(doc_id)})
        if not doc:
            raise NotFoundError()
        return await resolve_references(
            database,
            doc,
            max_collections=max_collections or settings.reference_max_collections,
            max_depth=max_depth or settings.reference_max_depth,
        )
    except PyMongoError as e:
        raise StoreError(str(e)) from e


@router.post("/{db}/{collection}")
async def insert_document(
    db: str,
    collection: str,
    payload: Dict[str, Any] = Body(...),
    client=Depends(get_client),
):
    doc = parse_document(payload)
    try:
        res = await client[db][collection].insert_one(doc)
    except PyMongoError as e:
        raise StoreError(str(e)) from e
    return {"success": True, "insertedId": str(res.inserted_id)}


@router.put("/{db}/{collection}/{doc_id}")
async def update_document(
    db: str,
    collection: str,
    doc_id: str,
    payload: Dict[str, Any] = Body(...),
    client=Depends(get_client),
):
    """Replace the whole document; an ``_id`` in the body is ignored."""
    doc = parse_document(payload)
    doc.pop("_id", None)
    try:
        res = await client[db][collection].replace_one({"_id": to_document_id(doc_id)}, doc)
    except PyMongoError as e:
        raise StoreError(str(e)) from e
    if res.matched_count == 0:
        raise NotFoundError()
    return {"success": True, "modifiedCount": res.modified_count}


@router.delete("/{db}/{collection}/{doc_id}")
async def delete_document(db: str, collection: str, doc_id: str, client=Depends(get_client)):
    try:
        res = await client[db][collection].delete_one({"_id": to_document_id(doc_id)})
    except PyMongoError as e:
        raise StoreError(str(e)) from e
    if res.deleted_count == 0:
        raise NotFoundError()
    return {"success": True}
