from fastapi import APIRouter, Depends
from pymongo.errors import PyMongoError

from ..dependencies import get_client
from ..errors import StoreError
from ..schemas import CollectionsResponse
from ..services.mongo import list_collection_infos

router = APIRouter(tags=["collections"])


@router.get("/{db}/collections", response_model=CollectionsResponse)
async def list_collections(db: str, client=Depends(get_client)):
    """Collections of db with estimated document counts."""
    try:
        return {"collections": await list_collection_infos(client[db])}
    except PyMongoError as e:
        raise StoreError(str(e)) from e
