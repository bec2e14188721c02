import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.staticfiles import StaticFiles

from . import routers
from .others.catalog import Catalog
from .others.config import Settings, configure_logging
from .others.db import SqliteSessionStore
from .others.gate import AccessGate, build_access_gate
from .others.pages import build_paywall_config
from .others.sessions import (
    SESSION_COOKIE,
    InMemorySessionStore,
    SessionStore,
    resolve_session,
)
from .others.types import HealthResponse
from .others.verifier import PaymentVerifier

logger = logging.getLogger(__name__)


def build_session_store(settings: Settings) -> SessionStore:
    if settings.session_store == "sqlite":
        return SqliteSessionStore(settings.session_db_path)
    return InMemorySessionStore()


def session_middleware(store: SessionStore) -> Callable:
    async def middleware(request: Request, call_next):
        resolved = resolve_session(store, request.cookies.get(SESSION_COOKIE))
        request.state.session_id = resolved.session_id
        request.state.paid_segments = resolved.paid

        response = await call_next(request)

        if resolved.is_new:
            response.set_cookie(
                SESSION_COOKIE,
                resolved.session_id,
                path="/",
                httponly=True,
                samesite="lax",
            )
        return response

    return middleware


def create_app(
    settings: Optional[Settings] = None,
    *,
    store: Optional[SessionStore] = None,
    verifier: Optional[PaymentVerifier] = None,
    gate: Optional[AccessGate] = None,
) -> FastAPI:
    if settings is None:
        settings = Settings.from_env()
    if store is None:
        store = build_session_store(settings)
    if gate is None:
        gate = build_access_gate(settings, verifier)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if gate.enforcement == "bypass":
            logger.warning("DEMO MODE: Payments disabled")
        else:
            logger.info(
                f"Payment enforcement on: {settings.price_per_segment} per segment "
                f"on {settings.network}"
            )
        yield
        await gate.drain()
        store.close()

    app = FastAPI(title="segmentpay", lifespan=lifespan)

    app.state.settings = settings
    app.state.store = store
    app.state.gate = gate
    app.state.catalog = Catalog(settings.segments_dir)
    app.state.paywall_config = build_paywall_config(settings)

    # Every request is bound to a session before routing
    app.middleware("http")(session_middleware(store))

    @app.get("/healthz", response_model=HealthResponse)
    async def healthz() -> HealthResponse:
        return HealthResponse(enforcement=gate.enforcement)

    app.include_router(routers.segments.router)
    app.include_router(routers.payment.router)

    # Player assets; mounted last so the routes above win
    if settings.public_dir.is_dir():
        app.mount("/", StaticFiles(directory=settings.public_dir, html=True), name="public")

    return app


def run() -> None:
    import uvicorn

    configure_logging()
    settings = Settings.from_env()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
