from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class ConnectRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    connection_string: str = Field(..., alias="connectionString")


class DatabaseInfo(BaseModel):
    name: str
    size_on_disk: float = Field(0, alias="sizeOnDisk")
    empty: bool = False


class ConnectResponse(BaseModel):
    success: bool
    databases: List[DatabaseInfo]


class DatabasesResponse(BaseModel):
    databases: List[DatabaseInfo]


class CollectionInfo(BaseModel):
    name: str
    count: int


class CollectionsResponse(BaseModel):
    collections: List[CollectionInfo]


class StatusResponse(BaseModel):
    connected: bool
    connection_string: Optional[str] = Field(None, alias="connectionString")


class SuccessResponse(BaseModel):
    success: bool = True
