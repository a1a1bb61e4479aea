import logging
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.engine import Engine

from reservations.api.router import api_router
from reservations.core.config import Settings, settings as default_settings
from reservations.core.errors import register_exception_handlers
from reservations.core.logging import configure_logging
from reservations.db.init_db import create_tables, seed_demo_data
from reservations.db.session import build_engine, build_session_factory
from reservations.services.notifier import Notifier, build_notifier

logger = logging.getLogger("reservations.main")

BACKEND_DIR = Path(__file__).resolve().parents[1]


def _run_migrations(settings: Settings) -> None:
    """Apply Alembic migrations on startup in production when enabled.

    Controlled by AUTO_APPLY_MIGRATIONS (default on). Safe to run repeatedly.
    """
    if settings.env.lower() != "prod" or not settings.auto_apply_migrations:
        return
    from alembic import command
    from alembic.config import Config

    alembic_ini = BACKEND_DIR / "alembic.ini"
    if not alembic_ini.exists():
        logger.warning("[migrate] alembic.ini not found at %s, skipping auto-migrations", alembic_ini)
        return
    cfg = Config(str(alembic_ini))
    # Resolve script_location even when launched from an arbitrary CWD
    cfg.set_main_option("script_location", str(BACKEND_DIR / "alembic"))
    logger.info("[migrate] applying Alembic migrations -> head")
    command.upgrade(cfg, "head")
    logger.info("[migrate] migrations applied")


def create_app(settings: Settings | None = None, engine: Engine | None = None, notifier: Notifier | None = None) -> FastAPI:
    """Build the API with its store and notifier.

    Without an explicit engine one is built from DATABASE_URL at startup.
    """
    settings = settings or default_settings
    configure_logging(settings.log_level)

    app = FastAPI(title=settings.app_name, version="0.1.0")
    app.state.settings = settings
    app.state.notifier = notifier or build_notifier(settings)
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine) if engine is not None else None
    app.state.owns_engine = engine is None

    origins = settings.cors_origins
    logger.info("[startup] resolved CORS origins: %s", origins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)
    app.include_router(api_router)

    @app.on_event("startup")
    def startup():
        if app.state.engine is None:
            app.state.engine = build_engine(settings.database_url, echo=settings.db_echo, busy_timeout=settings.db_busy_timeout)
            app.state.session_factory = build_session_factory(app.state.engine)
        _run_migrations(settings)
        if settings.auto_create_tables and settings.env.lower() != "prod":
            create_tables(app.state.engine)
        if settings.seed_demo_data:
            seed_demo_data(app.state.session_factory)

    @app.on_event("shutdown")
    def shutdown():
        if app.state.owns_engine and app.state.engine is not None:
            app.state.engine.dispose()

    return app


app = create_app()
