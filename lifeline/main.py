import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from lifeline.database import init_db
from lifeline.models import *  # noqa: F403

APP_VERSION = "0.1.0"
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup: validate config, create tables, seed the consent document
    from lifeline.config import settings, validate_security_posture
    from lifeline.database import async_session
    from lifeline.services.account_service import get_account_notifier
    from lifeline.services.biometric_service import get_biometric_verifier
    from lifeline.services.consent_service import ConsentGate

    validate_security_posture(settings)
    await init_db()

    async with async_session() as db:
        gate = ConsentGate(db, get_biometric_verifier(), get_account_notifier())
        doc = await gate.ensure_default_document()
        logger.info("Current consent document version %s", doc.version)

    yield

    from lifeline.database import dispose_engine

    await dispose_engine()


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        response.headers["Cache-Control"] = "no-store"
        return response


def create_app() -> FastAPI:
    app = FastAPI(
        title="Lifeline Content Protection",
        description="Content fingerprints, watermarks, capture enforcement and consent-gated access",
        version=APP_VERSION,
        lifespan=lifespan,
    )

    from lifeline.config import settings

    allowed_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware)

    from lifeline.api import API_PREFIX, API_ROUTERS

    for router in API_ROUTERS:
        app.include_router(router, prefix=API_PREFIX)

    @app.get("/")
    async def root() -> dict[str, str]:
        return {
            "name": "Lifeline Content Protection",
            "version": APP_VERSION,
            "docs": "/docs",
            "health": f"{API_PREFIX}/health",
        }

    return app


app = create_app()
