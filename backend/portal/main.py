"""
Customer Portal Backend API
FastAPI application exposing customer document storage.

Startup builds every long-lived collaborator once (object store, document
service, Supabase auth client, mail transport and mailer) and keeps them on
``app.state``; shutdown closes the mail transport's connection pool.

The mailer has no HTTP route of its own. Handlers and background tasks that
send transactional email take it through the ``get_mailer`` dependency.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from portal.config import Settings, load_settings
from portal.db import create_user_client
from portal.errors import PortalError, RenameIncompleteError
from portal.routers import documents
from portal.services.documents import DocumentService
from portal.services.email_transport import SendGridTransport
from portal.services.mailer import Mailer
from portal.services.object_store import create_object_store

logger = logging.getLogger(__name__)

SERVICE_NAME = "customer-portal-api"


def get_cors_origins(settings: Settings) -> List[str]:
    """
    Build the list of allowed CORS origins.

    Development always allows the local frontend (http://localhost:3000);
    additional origins come from the CORS_ORIGINS environment variable as a
    comma-separated list. Duplicates are removed while preserving order.
    """
    always_included = ["http://localhost:3000"] if settings.app_env == "development" else []

    seen: set = set()
    origins: List[str] = []
    for origin in always_included + settings.cors_origins:
        if origin not in seen:
            seen.add(origin)
            origins.append(origin)
    return origins


def get_mailer(request: Request) -> Mailer:
    return request.app.state.mailer


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings

    store = create_object_store(settings)
    app.state.documents = DocumentService(store, settings)
    app.state.supabase = create_user_client(settings)
    transport = SendGridTransport.from_settings(settings)
    app.state.mailer = Mailer(transport, settings)

    logger.info(
        f"{settings.app_name} API started: env={settings.app_env} "
        f"storage={settings.storage_backend} bucket={settings.docs_bucket} "
        f"mail={'configured' if transport.configured else 'disabled'}"
    )
    try:
        yield
    finally:
        await transport.aclose()


async def portal_error_handler(request: Request, exc: PortalError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")

    content = {"detail": exc.message, "code": exc.code}
    if isinstance(exc, RenameIncompleteError):
        content["from_path"] = exc.from_path
        content["to_path"] = exc.to_path
    return JSONResponse(status_code=exc.status_code, content=content)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or load_settings()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    app = FastAPI(
        title=f"{settings.app_name} API",
        description="Customer document storage and transactional email",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_cors_origins(settings),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(PortalError, portal_error_handler)

    app.include_router(documents.router, prefix="/api/documents", tags=["documents"])

    @app.get("/api/health")
    async def health():
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": SERVICE_NAME,
        }

    return app


app = create_app()
