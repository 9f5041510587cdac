from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from . import logger as log_config
from .crud import FileStore, create_store
from .exceptions import RelayError
from .lifecycle import FileLifecycleManager
from .routes import callbacks, cdn, ingest, v6, v7
from .sessions import UploadSessionIssuer
from .settings import Settings
from .storage.base import StorageAdapter
from .storage.factory import create_storage


async def relay_error_handler(request: Request, exc: RelayError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def validation_error_handler(request: Request, exc: RequestValidationError):
    issues = [{"loc": list(e["loc"]), "msg": e["msg"]} for e in exc.errors()]
    return JSONResponse(status_code=400, content={"error": "Invalid request", "issues": issues})


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.opt(exception=exc).error("Unhandled error on {} {}", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[FileStore] = None,
    storage: Optional[StorageAdapter] = None,
) -> FastAPI:
    """Build the relay. Run with ``uvicorn uprelay.main:create_app --factory``."""
    settings = settings or Settings()
    log_config.configure(settings)
    store = store or create_store(settings.DATABASE_URL)
    storage = storage or create_storage(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store.init_db()
        logger.info("Server running on {}", settings.BASE_URL)
        logger.info("Storage provider: {}", settings.STORAGE_PROVIDER)
        yield

    app = FastAPI(title="uprelay", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.storage = storage
    app.state.lifecycle = FileLifecycleManager(store, storage)
    app.state.issuer = UploadSessionIssuer(settings)

    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        # path only: signed query strings stay out of the log files
        logger.debug("Incoming request {} {}", request.method, request.url.path)
        return await call_next(request)

    app.add_exception_handler(RelayError, relay_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    @app.get("/")
    def root():
        return {"status": "ok", "service": "uprelay"}

    @app.get("/health")
    def health():
        return {"status": "ok"}

    # fixed paths first: the ingest routes match any single path segment
    app.include_router(v6)
    app.include_router(v7)
    app.include_router(callbacks)
    app.include_router(cdn)
    app.include_router(ingest)
    return app
