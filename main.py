"""
Main API module for Shorty Platform.

Responsibilities:
    - Expose REST endpoints for shortening URLs (single, JSON, batch)
    - Redirect short ids to their original URL (410 once deleted)
    - List and delete the caller's URLs (deletes run in the background)
    - Serve store statistics to a trusted subnet and a storage health check

Architecture:
    - App Factory pattern (create_app) for test isolation and DI.
    - Storage backend chosen by configuration (memory, file, postgres) via the
      storage factory; the app never branches on which one it got.
    - URLManager owns validation, id generation, retry and async deletion.
    - The owner of a URL is identified by a signed `user_id` cookie.

LLM Prompt Example:
    "Explain how to structure a FastAPI service with an application factory,
    injected dependencies, and a clean separation between API and storage."
"""

import contextlib
import ipaddress
import logging
from typing import Any, Dict, List, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from shorty_platform.auth.dependencies import get_owner_id, require_owner_id
from shorty_platform.config import Settings, settings as default_settings
from shorty_platform.manager.strategies import get_strategy_from_config
from shorty_platform.manager.url_manager import BatchItem, UniqueIDGenerationError, URLManager
from shorty_platform.storage.base import BaseStorage
from shorty_platform.storage.errors import StorageError, URLAlreadyExistsError
from shorty_platform.storage.storage_factory import get_storage


class ShortenRequest(BaseModel):
    """Request payload for POST /api/shorten."""
    url: str


class ShortenResponse(BaseModel):
    result: str


class BatchRequestItem(BaseModel):
    correlation_id: str
    original_url: str


class BatchResponseItem(BaseModel):
    correlation_id: str
    short_url: str


class UserURL(BaseModel):
    short_url: str
    original_url: str


class StatsResponse(BaseModel):
    urls: int
    users: int


def create_app(settings: Optional[Settings] = None, storage: Optional[BaseStorage] = None) -> FastAPI:
    """
    Factory function to build and configure a new FastAPI app instance.

    Args:
        settings (Optional[Settings]): Overrides the module-level settings.
        storage (Optional[BaseStorage]): Pre-built backend; otherwise the
            storage factory builds one from `settings`.

    Returns:
        FastAPI: A configured application with its own storage and manager.
    """
    settings = settings or default_settings

    if not logging.getLogger().handlers:
        logging.basicConfig(level=settings.log_level)
    log = logging.getLogger("shorty_platform.api")

    if storage is None:
        storage = get_storage(
            settings.resolved_backend,
            dsn=settings.database_dsn,
            file_path=settings.file_storage_path,
            fsync=settings.file_fsync,
        )
    storage.open()

    manager = URLManager(
        storage=storage,
        id_strategy=get_strategy_from_config(settings.id_strategy, length=settings.id_length),
        base_url=settings.base_url,
        max_retries=settings.id_max_retries,
        delete_workers=settings.delete_workers,
    )
    trusted_network = ipaddress.ip_network(settings.trusted_subnet, strict=False) if settings.trusted_subnet else None

    @contextlib.asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        manager.shutdown(wait=True)
        storage.close()

    app = FastAPI(
        title="Shorty Platform",
        description="URL shortener with pluggable memory, file and PostgreSQL storage",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.storage = storage
    app.state.manager = manager
    log.info("Shorty storage backend: %s", type(storage).__name__)

    # ----------------------------------------------------------------
    # Error mapping
    # ----------------------------------------------------------------
    @app.exception_handler(URLAlreadyExistsError)
    async def _url_exists(request: Request, exc: URLAlreadyExistsError):
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={"detail": "URL already exists", "short_url": manager.short_url(exc.short_id)},
        )

    @app.exception_handler(StorageError)
    async def _storage_error(request: Request, exc: StorageError):
        log.error("Storage failure on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(status_code=500, content={"detail": "Internal storage error"})

    @app.exception_handler(UniqueIDGenerationError)
    async def _id_exhausted(request: Request, exc: UniqueIDGenerationError):
        log.error("Short id generation exhausted on %s", request.url.path)
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    # ----------------------------------------------------------------
    # Routes
    # ----------------------------------------------------------------
    @app.get("/ping")
    def ping() -> Dict[str, str]:
        if not storage.ping():
            raise HTTPException(status_code=500, detail="Storage unavailable")
        return {"status": "ok"}

    @app.post("/", response_class=PlainTextResponse, status_code=status.HTTP_201_CREATED)
    async def shorten_text(request: Request, response: Response, owner_id: str = Depends(get_owner_id)) -> str:
        """
        Shorten the URL sent as a text/plain body.

        Returns the short URL as text: 201 when created, 409 when the URL was
        already shortened (the existing short URL is returned).
        """
        url = (await request.body()).decode("utf-8", errors="replace").strip()
        try:
            result = await run_in_threadpool(manager.create_short_url, url, owner_id)
        except ValueError as ve:
            raise HTTPException(status_code=400, detail=str(ve))
        if not result.created:
            response.status_code = status.HTTP_409_CONFLICT
        return result.short_url

    @app.post("/api/shorten", response_model=ShortenResponse, status_code=status.HTTP_201_CREATED)
    def shorten_json(req: ShortenRequest, response: Response, owner_id: str = Depends(get_owner_id)) -> Dict[str, str]:
        try:
            result = manager.create_short_url(req.url, owner_id)
        except ValueError as ve:
            raise HTTPException(status_code=400, detail=str(ve))
        if not result.created:
            response.status_code = status.HTTP_409_CONFLICT
        return {"result": result.short_url}

    @app.post(
        "/api/shorten/batch",
        response_model=List[BatchResponseItem],
        status_code=status.HTTP_201_CREATED,
    )
    def shorten_batch(
        items: List[BatchRequestItem],
        owner_id: str = Depends(get_owner_id),
    ) -> List[Dict[str, Any]]:
        """
        Shorten a batch all-or-nothing. A URL that is already shortened fails
        the whole batch with 409.
        """
        try:
            results = manager.batch_shorten(
                [BatchItem(i.correlation_id, i.original_url) for i in items], owner_id
            )
        except ValueError as ve:
            raise HTTPException(status_code=400, detail=str(ve))
        return [r._asdict() for r in results]

    @app.get("/api/user/urls", response_model=List[UserURL])
    def user_urls(owner_id: str = Depends(require_owner_id)):
        urls = manager.get_user_urls(owner_id)
        if not urls:
            return Response(status_code=status.HTTP_204_NO_CONTENT)
        return urls

    @app.delete("/api/user/urls", status_code=status.HTTP_202_ACCEPTED)
    def delete_user_urls(
        ids: List[str] = Body(...),
        owner_id: str = Depends(require_owner_id),
    ) -> Dict[str, str]:
        manager.delete_urls_async(owner_id, ids)
        return {"status": "accepted"}

    @app.get("/api/internal/stats", response_model=StatsResponse)
    def internal_stats(request: Request) -> Dict[str, int]:
        """Store statistics; only for X-Real-IP inside the trusted subnet."""
        if trusted_network is None:
            raise HTTPException(status_code=403, detail="Forbidden")
        try:
            client_ip = ipaddress.ip_address(request.headers.get("x-real-ip", "").strip())
        except ValueError:
            raise HTTPException(status_code=403, detail="Forbidden")
        if client_ip not in trusted_network:
            raise HTTPException(status_code=403, detail="Forbidden")
        stats = manager.stats()
        return {"urls": stats.urls, "users": stats.owners}

    @app.get("/{short_id}")
    def redirect(short_id: str):
        """307 to the original URL; 410 once deleted; 404 if unknown."""
        record = manager.get(short_id)
        if record is None:
            raise HTTPException(status_code=404, detail="URL not found")
        if record.deleted:
            raise HTTPException(status_code=410, detail="URL deleted")
        return RedirectResponse(url=record.original_url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)

    return app


# `uvicorn main:app` and `from main import app` keep working.
app = create_app()
