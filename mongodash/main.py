"""
MongoDB Dashboard backend - FastAPI application.

Browse databases and collections of one MongoDB deployment, page through
documents newest first, and edit them through a tagged-JSON API.
"""
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Callable, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings, get_settings
from .errors import DashboardError
from .routers import collections, connections, databases, documents
from .routers import schema as schema_router
from .services.mongo import ConnectionManager

# Load env from .env.local next to the package if it exists
_env_path = Path(__file__).resolve().parent.parent / ".env.local"
if _env_path.exists():
    load_dotenv(_env_path)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    conn_mgr: ConnectionManager = app.state.conn_mgr

    if settings.mongo_uri:
        try:
            await conn_mgr.connect(settings.mongo_uri)
        except DashboardError as e:
            logger.warning("Startup connection failed: %s", e.message)

    yield

    await conn_mgr.disconnect()


async def dashboard_error_handler(request: Request, exc: DashboardError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"Invalid request: {location + ': ' if location else ''}{first.get('msg')}"
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": str(exc) or "Internal Server Error"})


def create_app(
    settings: Optional[Settings] = None,
    client_factory: Optional[Callable[..., Any]] = None,
) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )

    app = FastAPI(title="MongoDB Dashboard Backend", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    if client_factory is None:
        app.state.conn_mgr = ConnectionManager(settings)
    else:
        app.state.conn_mgr = ConnectionManager(settings, client_factory=client_factory)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(DashboardError, dashboard_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    @app.get("/api/health")
    async def health():
        return {"status": "ok"}

    # Order matters: fixed segments before the catch-all document routes
    app.include_router(connections.router, prefix="/api")
    app.include_router(databases.router, prefix="/api")
    app.include_router(collections.router, prefix="/api")
    app.include_router(schema_router.router, prefix="/api")
    app.include_router(documents.router, prefix="/api")

    return app


app = create_app()
