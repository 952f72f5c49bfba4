import logging
import re
import uuid
from pathlib import Path
from typing import Optional

from ariadne.asgi import GraphQL
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tsukumart.api.resolvers import build_schema, format_error
from tsukumart.config import Settings, settings as default_settings
from tsukumart.routers import auth, images, line
from tsukumart.services import Services, build_services
from tsukumart.utils.logger import logger

ALEMBIC_DIR = Path(__file__).resolve().parent.parent / "alembic"


def run_migrations(services: Services) -> None:
    """Bring the schema to head; fall back to create_all when Alembic fails."""
    database_url = services.settings.DATABASE_URL
    masked_url = re.sub(r"://([^:]+):([^@]+)@", r"://\1:****@", database_url)
    logger.info(f"📊 Database URL: {masked_url}")

    try:
        from alembic import command
        from alembic.config import Config

        alembic_cfg = Config()
        alembic_cfg.set_main_option("script_location", str(ALEMBIC_DIR))
        alembic_cfg.set_main_option("sqlalchemy.url", database_url.replace("%", "%%"))
        command.upgrade(alembic_cfg, "head")
        logger.info("✅ Database migrations completed successfully!")
    except Exception as e:
        logger.warning(f"⚠️  Alembic migration failed: {e}")
        logger.info("🔨 Creating tables manually...")
        services.store.create_all()
        logger.info("✅ Tables created successfully!")


def _get_context(request: Request, _data=None) -> dict:
    return {"request": request, "services": request.app.state.services}


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    settings = settings or default_settings
    app = FastAPI(title="Tsukumart API", version="1.0.0")
    app.state.services = services

    @app.middleware("http")
    async def request_logger(request: Request, call_next):
        rid = uuid.uuid4().hex[:8]
        request.state.rid = rid
        logging.info("→ %s %s rid=%s", request.method, request.url.path, rid)
        try:
            resp = await call_next(request)
            logging.info("← %s status=%s rid=%s", request.url.path, resp.status_code, rid)
            resp.headers["X-Request-ID"] = rid
            return resp
        except Exception as e:
            logging.exception("Unhandled error rid=%s: %s", rid, str(e))
            error_resp = JSONResponse(
                {"error": "internal_error", "rid": rid, "type": type(e).__name__},
                status_code=500,
            )
            error_resp.headers["X-Request-ID"] = rid
            return error_resp

    app.include_router(line.router)
    app.include_router(auth.router)
    app.include_router(images.router)

    graphql_app = GraphQL(
        build_schema(),
        context_value=_get_context,
        error_formatter=format_error,
        debug=settings.DEBUG,
    )
    app.add_route("/api", graphql_app, methods=["GET", "POST"])

    @app.on_event("startup")
    async def startup_event():
        logger.info("Tsukumart API starting up...")
        if app.state.services is None:
            app.state.services = build_services(settings)
            run_migrations(app.state.services)

    @app.on_event("shutdown")
    async def shutdown_event():
        if app.state.services is None:
            return
        await app.state.services.line_notify.drain()
        if services is None:
            app.state.services.store.dispose()

    return app


app = create_app()
