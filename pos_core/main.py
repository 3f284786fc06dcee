import logging

from fastapi import FastAPI

from .core.config import settings
from .db import SessionLocal, init_db
from .routers import deps, health, pos, shift
from .services.store import SqlPosStore


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(store=None) -> FastAPI:
    configure_logging()
    deps.use_store(store)

    app = FastAPI(title=settings.app_name, version=settings.app_version)
    app.include_router(health.router)
    app.include_router(shift.router)
    app.include_router(pos.router)
    return app


def build_default_app() -> FastAPI:
    # create missing tables (dev)
    init_db()
    return create_app(SqlPosStore(SessionLocal))


app = build_default_app()
