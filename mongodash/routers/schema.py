from typing import Optional

from fastapi import APIRouter, Depends, Query
from pymongo.errors import PyMongoError

from ..config import Settings
from ..dependencies import get_app_settings, get_client
from ..errors import StoreError
from ..services.schema_infer import infer_schema
from ..utils import to_jsonable

router = APIRouter(tags=["schema"])


@router.get("/{db}/{collection}/schema")
async def collection_schema(
    db: str,
    collection: str,
    sample_size: Optional[int] = Query(None, alias="sampleSize", ge=1, le=1000),
    client=Depends(get_client),
    settings: Settings = Depends(get_app_settings),
):
    """Infer field types from a sample of documents to build an edit form.

    An empty collection yields ``isEmpty: true`` and no fields; callers fall
    back to raw JSON editing.
    """
    try:
        schema = await infer_schema(client[db][collection], sample_size or settings.schema_sample_size)
    except PyMongoError as e:
        raise StoreError(str(e)) from e
    return {"schema": to_jsonable(schema)}
