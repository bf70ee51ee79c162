from fastapi import Depends, Request

from .config import Settings
from .services.mongo import ConnectionManager


def get_connection_manager(request: Request) -> ConnectionManager:
    return request.app.state.conn_mgr


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_client(conn_mgr: ConnectionManager = Depends(get_connection_manager)):
    """Live client of the active connection; raises NotConnectedError otherwise."""
    return conn_mgr.require_client()
