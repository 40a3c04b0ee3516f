"""
Scout Race Registrations - FastAPI Application

Provides the registration API and the admin API (session, listings, CSV
exports, payment tracking) for a scout race meet.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import config
from .api.admin import admin_router
from .api.dependencies import ApiError, build_services, error_response
from .api.routes import router
from .config import Settings, load_settings
from .errors import ErrorKind, fail
from .storage import DatabaseInterface, get_database

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    db: Optional[DatabaseInterface] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Configuration; loaded from the environment at startup if omitted
        db: Storage; taken from the DB_TYPE factory at startup if omitted
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events."""
        resolved_settings = settings or load_settings()
        database = db or get_database()
        app.state.services = build_services(resolved_settings, database)

        races = len(database.get_races())
        if races == 0:
            print("[*] No races configured. Seed them with: python -m scoutrace.seed races.json")
        else:
            print(f"[+] {races} race(s) open for registration")
        print("[*] App is ready.")

        yield

        print("[*] Shutting down...")

    app = FastAPI(
        title="Scout Race Registrations",
        description="Registration and admin API for a scout race meet",
        version="1.0.0",
        lifespan=lifespan
    )

    allowed_origins = list(settings.allowed_origins if settings else config.ALLOWED_ORIGINS)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH"],
        allow_headers=["*"],
    )

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
        return error_response(exc.failure)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        fields = [
            {"field": ".".join(str(p) for p in e.get("loc", ())), "reason": e.get("msg", "")}
            for e in exc.errors()
        ]
        return error_response(fail(ErrorKind.INVALID_PAYLOAD, fields=fields))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        # Full detail stays in the server log; the client gets a generic message
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return error_response(fail(ErrorKind.INTERNAL))

    app.include_router(router)
    app.include_router(admin_router)
    return app


app = create_app()


# Run with: uvicorn scoutrace.main:app --reload
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=config.HOST, port=config.PORT)
