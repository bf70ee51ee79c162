from fastapi import APIRouter, Depends
from pymongo.errors import PyMongoError

from ..dependencies import get_client
from ..errors import StoreError
from ..schemas import DatabasesResponse
from ..services.mongo import list_database_infos

router = APIRouter(tags=["databases"])


@router.get("/databases", response_model=DatabasesResponse)
async def list_databases(client=Depends(get_client)):
    try:
        return {"databases": await list_database_infos(client)}
    except PyMongoError as e:
        raise StoreError(str(e)) from e
