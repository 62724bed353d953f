"""Application factory."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from smartwindow.auth.gate import SessionGate
from smartwindow.auth.ledger import TokenLedger
from smartwindow.auth.router import router as auth_router
from smartwindow.collaborators import (
    FirebaseArchive,
    Notifier,
    NullArchive,
    NullNotifier,
    TelegramNotifier,
    TelemetryArchive,
)
from smartwindow.config import Settings
from smartwindow.db.base import Base
from smartwindow.db.engine import create_async_engine_from_settings
from smartwindow.db.migrations.runtime import (
    PackagedMigrationsError,
    get_schema_status,
    run_upgrade_to_head,
    stamp,
)
from smartwindow.obs import init_observability
from smartwindow.relay import ConnectionRegistry, RelayEngine, Role, SideEffectQueue, StateStore
from smartwindow.relay.router import router as relay_router
from smartwindow.version import __version__ as SMARTWINDOW_VERSION

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    archive: TelemetryArchive | None = None,
    notifier: Notifier | None = None,
) -> FastAPI:
    """Create the relay application: credential store, session gate, relay engine and routes.

    ``archive`` and ``notifier`` override the collaborators built from settings.
    """
    if settings is None:
        settings = Settings()

    # --- credential store (async) ---
    async_engine = create_async_engine_from_settings(settings)

    # Import models so they register with Base.metadata before create_all.
    import smartwindow.auth.models  # noqa: F401

    async_session_factory = async_sessionmaker(async_engine, expire_on_commit=False)
    session_gate = SessionGate(
        TokenLedger(async_session_factory),
        signing_key=settings.effective_signing_key(),
        algorithm=settings.auth_algorithm,
    )

    # --- collaborators ---
    http_client = httpx.AsyncClient(timeout=settings.collaborator_timeout_seconds)
    if archive is None:
        if settings.firebase_enabled:
            archive = FirebaseArchive(
                settings.firebase_db_url, client=http_client, auth=settings.firebase_auth
            )
        else:
            archive = NullArchive()
    if notifier is None:
        if settings.telegram_enabled:
            notifier = TelegramNotifier(
                settings.telegram_token, settings.telegram_chat_id, client=http_client
            )
        else:
            notifier = NullNotifier()

    side_effects = SideEffectQueue(
        maxsize=settings.side_effect_queue_size,
        workers=settings.side_effect_workers,
        timeout=settings.collaborator_timeout_seconds,
    )
    relay_engine = RelayEngine(
        registry=ConnectionRegistry(),
        store=StateStore(),
        side_effects=side_effects,
        archive=archive,
        notifier=notifier,
        require_observer_token=settings.require_observer_token,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        if settings.auto_upgrade:
            if settings.env == "production":
                logger.warning(
                    "SMARTWINDOW_AUTO_UPGRADE is enabled in production; "
                    "this is an explicit operator decision."
                )
            try:
                await asyncio.to_thread(run_upgrade_to_head, settings.database_url)
                logger.warning("database schema auto-upgrade completed to migration head")
            except PackagedMigrationsError:
                logger.warning("packaged migrations not found; installation may be broken")

        try:
            schema_status = await asyncio.to_thread(get_schema_status, settings.database_url)
            if schema_status.warning:
                logger.warning(schema_status.warning)
            async with async_engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            if schema_status.state == "fresh":
                await asyncio.to_thread(stamp, settings.database_url, "head")
        except PackagedMigrationsError:
            logger.warning("packaged migrations not found; installation may be broken")
        except SQLAlchemyError:
            logger.exception("credential store unreachable; auth routes will answer 503")
        else:
            app.state.credential_store_ready = True

        await side_effects.start()
        logger.info(
            "relay ready (archive=%s, notifier=%s)",
            type(archive).__name__,
            type(notifier).__name__,
        )
        try:
            yield
        finally:
            await side_effects.stop()
            await http_client.aclose()
            await async_engine.dispose()

    app = FastAPI(
        title="smartwindow",
        description="Realtime relay between a smart-window controller and its dashboards.",
        version=SMARTWINDOW_VERSION,
        lifespan=lifespan,
    )

    # Store on app.state for dependency access.
    app.state.settings = settings
    app.state.async_engine = async_engine
    app.state.async_session_factory = async_session_factory
    app.state.session_gate = session_gate
    app.state.relay_engine = relay_engine
    app.state.credential_store_ready = False

    init_observability(app)

    # --- routers ---
    app.include_router(auth_router)
    app.include_router(relay_router)

    # --- default routes ---
    class RootResponse(BaseModel):
        message: str = Field(..., description="Service banner.")

    class HealthResponse(BaseModel):
        status: str = Field(..., description="'ok' or 'unavailable'.")
        timestamp: str = Field(..., description="Server time, ISO-8601 UTC.")
        devices: int = Field(..., description="Connected device sockets.")
        observers: int = Field(..., description="Connected observers (sockets and streams).")

    @app.get(
        "/",
        response_model=RootResponse,
        summary="Banner",
        description="Identifies the running service.",
    )
    def root() -> RootResponse:
        return RootResponse(message="Smart Window relay is running")

    @app.get(
        "/api/health",
        response_model=HealthResponse,
        summary="Health",
        description="Checks the credential store and reports live connection counts.",
        responses={503: {"model": HealthResponse}},
    )
    async def health(request: Request) -> JSONResponse:
        registry = relay_engine.registry
        ok = request.app.state.credential_store_ready
        if ok:
            try:
                async with async_engine.connect() as conn:
                    await conn.execute(text("SELECT 1"))
            except SQLAlchemyError as exc:
                logger.warning("health check failed: %s", type(exc).__name__)
                ok = False
        body = HealthResponse(
            status="ok" if ok else "unavailable",
            timestamp=datetime.now(UTC).isoformat(),
            devices=registry.count(Role.DEVICE),
            observers=registry.count(Role.OBSERVER),
        )
        return JSONResponse(status_code=200 if ok else 503, content=body.model_dump())

    return app
