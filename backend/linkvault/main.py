import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from linkvault.api.routes import blobs as blobs_routes
from linkvault.api.routes import health as health_routes
from linkvault.api.routes import metrics as metrics_routes
from linkvault.api.routes import uploads as uploads_routes
from linkvault.core.config import get_settings
from linkvault.core.errors import register_error_handlers
from linkvault.core.security_headers import SecurityHeadersMiddleware
from linkvault.core.tracing import init_tracing
from linkvault.db.base import Base
from linkvault.db.migrations import run_migrations_on_startup
from linkvault.db.session import SessionLocal, engine
from linkvault.services.blobs import build_blob_backend
from linkvault.services.store import RecordStore
from linkvault.services.sweeper import ExpirySweeper
from linkvault.services.vault import VaultService

logger = logging.getLogger("lv.vault")


def build_vault() -> VaultService:
    settings = get_settings()
    store = RecordStore(SessionLocal)
    return VaultService.from_settings(settings, store, build_blob_backend(settings))


def create_app(vault: Optional[VaultService] = None) -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=f"{settings.app_name} API")

    if vault is None:
        # Auto-create tables only in non-production for local/dev convenience.
        # In production all schema changes must go through Alembic migrations.
        if settings.environment != "production":
            try:
                Base.metadata.create_all(bind=engine)
            except Exception:
                logger.exception("Could not create tables")
        vault = build_vault()

    app.state.vault = vault
    app.state.sweeper = ExpirySweeper(
        vault.store,
        vault.blobs,
        interval_seconds=settings.sweep_interval_seconds,
        batch_size=settings.sweep_batch_size,
    )

    @app.on_event("startup")
    def _startup() -> None:
        run_migrations_on_startup()
        if settings.sweeper_enabled:
            app.state.sweeper.start()

    @app.on_event("shutdown")
    def _shutdown() -> None:
        app.state.sweeper.stop()

    init_tracing(app)
    register_error_handlers(app)

    origins = [o.strip() for o in settings.backend_cors_origins.split(',') if o.strip()]
    cors_kwargs = dict(
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    if origins:
        cors_kwargs["allow_origins"] = origins  # type: ignore
    if settings.backend_cors_origins_regex:
        cors_kwargs["allow_origin_regex"] = settings.backend_cors_origins_regex  # type: ignore
    app.add_middleware(CORSMiddleware, **cors_kwargs)

    app.add_middleware(SecurityHeadersMiddleware)

    app.include_router(health_routes.router)
    app.include_router(metrics_routes.router)
    app.include_router(uploads_routes.router)
    app.include_router(blobs_routes.router)

    return app


app = create_app()
