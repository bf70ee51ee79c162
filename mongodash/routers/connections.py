from fastapi import APIRouter, Depends
from pymongo.errors import PyMongoError

from ..dependencies import get_connection_manager
from ..errors import StoreConnectionError
from ..schemas import ConnectRequest, ConnectResponse, StatusResponse, SuccessResponse
from ..services.mongo import ConnectionManager, list_database_infos

router = APIRouter(tags=["connections"])


@router.post("/connect", response_model=ConnectResponse)
async def connect(req: ConnectRequest, conn_mgr: ConnectionManager = Depends(get_connection_manager)):
    client = await conn_mgr.connect(req.connection_string)
    try:
        databases = await list_database_infos(client)
    except PyMongoError as e:
        raise StoreConnectionError(str(e)) from e
    return {"success": True, "databases": databases}


@router.get("/status", response_model=StatusResponse, response_model_exclude_none=True)
async def status(conn_mgr: ConnectionManager = Depends(get_connection_manager)):
    """Ping the active connection; a dead one is closed and reported as disconnected."""
    return await conn_mgr.status()


@router.post("/disconnect", response_model=SuccessResponse)
async def disconnect(conn_mgr: ConnectionManager = Depends(get_connection_manager)):
    await conn_mgr.disconnect()
    return {"success": True}
