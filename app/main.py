"""
trynet maintenance API

Main FastAPI application with security hardening.
"""

import json
import logging
import os
import secrets
import time
from contextlib import asynccontextmanager
from typing import Callable, Optional

from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.middleware.base import BaseHTTPMiddleware

from app.api.v1.api import api_router
from app.auth.dependencies import get_client_ip
from app.auth.jwt import TokenIssuer
from app.auth.password import generate_temp_password, hash_password
from app.core import config
from app.core.config import SigningConfig, get_cors_allow_origins, get_trusted_hosts, settings
from app.core.database import async_session_maker, close_db, engine, init_db
from app.core.errors import register_exception_handlers
from app.core.log import configure_logging, log_event, sanitize
from app.models.user import User, UserRole, UserStatus
from app.schemas.common import HealthResponse, SuccessResponse

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


# =============================================================================
# Application Lifespan (startup/shutdown)
# =============================================================================

async def create_default_admin_if_needed(session_maker: async_sessionmaker[AsyncSession] = async_session_maker):
    """Create the bootstrap admin when the user table is empty."""
    async with session_maker() as session:
        result = await session.execute(select(func.count(User.id)))
        if result.scalar():
            return

        password = config.ADMIN_PASSWORD
        generated = password is None
        if generated:
            password = generate_temp_password()

        admin = User(
            username=config.ADMIN_USERNAME.lower(),
            full_name="Administrator",
            password_hash=hash_password(password),
            role=UserRole.ADMIN,
            status=UserStatus.ACTIVE,
        )
        session.add(admin)
        await session.commit()

        if generated:
            logger.warning(
                "Default admin account created with a generated password; change it immediately",
                extra={"event": {
                    "action": "ADMIN_BOOTSTRAPPED",
                    "username": admin.username,
                    "generated_password": password,
                }},
            )
        else:
            log_event(logger, logging.INFO, "ADMIN_BOOTSTRAPPED", username=admin.username)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    configure_logging(config.LOG_LEVEL)
    log_event(logger, logging.INFO, "STARTUP", environment=config.APP_ENV, version=VERSION)

    await init_db()
    await create_default_admin_if_needed()

    yield

    log_event(logger, logging.INFO, "SHUTDOWN")
    await close_db()


# =============================================================================
# Security Middleware
# =============================================================================

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next: Callable):
        response = await call_next(request)

        # Prevent clickjacking
        response.headers["X-Frame-Options"] = "DENY"

        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"

        # Referrer policy
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        # JSON API only
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"

        # HSTS (only enable in production with HTTPS)
        if os.getenv("ENABLE_HSTS", "false").lower() == "true":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Add unique request ID for tracing."""

    async def dispatch(self, request: Request, call_next: Callable):
        request_id = request.headers.get("X-Request-ID") or secrets.token_urlsafe(8)
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One log line per request and per response. Bodies are sanitized."""

    MAX_LOGGED_BODY = 10_000

    async def _body(self, request: Request):
        if "application/json" not in request.headers.get("content-type", ""):
            return None
        raw = await request.body()
        if not raw or len(raw) > self.MAX_LOGGED_BODY:
            return None
        try:
            return sanitize(json.loads(raw))
        except ValueError:
            return None

    async def dispatch(self, request: Request, call_next: Callable):
        started = time.perf_counter()
        request_id = getattr(request.state, "request_id", None)

        log_event(
            logger, logging.INFO, "REQUEST",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            query=dict(request.query_params),
            body=await self._body(request),
            ip=get_client_ip(request),
        )

        response = await call_next(request)

        log_event(
            logger, logging.INFO, "RESPONSE",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return response


# =============================================================================
# FastAPI Application
# =============================================================================

def create_app(signing: Optional[SigningConfig] = None) -> FastAPI:
    """
    Build the application.

    `signing` defaults to SigningConfig.from_env(); tests pass their own so
    every test run signs with distinct, known secrets.
    """
    if signing is None:
        missing = SigningConfig.missing_env_secrets()
        if missing:
            if config.is_production():
                raise RuntimeError(f"Missing signing secrets: {', '.join(missing)}")
            log_event(logger, logging.WARNING, "SIGNING_SECRETS_GENERATED", missing=missing)
        signing = SigningConfig.from_env()

    app = FastAPI(
        title="trynet maintenance API",
        version=VERSION,
        description="Maintenance and asset tracking backend",
        lifespan=lifespan,
        docs_url="/docs" if os.getenv("ENABLE_DOCS", "true").lower() == "true" else None,
        redoc_url="/redoc" if os.getenv("ENABLE_DOCS", "true").lower() == "true" else None,
    )
    app.state.token_issuer = TokenIssuer(signing)
    app.state.settings = settings

    # Order matters - last added runs first
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Trusted hosts (prevent host header attacks)
    trusted_hosts = get_trusted_hosts()
    if "*" not in trusted_hosts:
        app.add_middleware(TrustedHostMiddleware, allowed_hosts=trusted_hosts)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_cors_allow_origins(),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    register_exception_handlers(app)

    @app.get("/health", tags=["health"], response_model=SuccessResponse)
    async def health_check():
        """Health check endpoint for load balancers and monitoring."""
        db_status = "healthy"
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception as e:
            log_event(logger, logging.ERROR, "HEALTH_CHECK_FAILED", error=str(e))
            # Don't leak connection details in production
            db_status = "unhealthy" if config.is_production() else f"unhealthy: {e}"

        health = HealthResponse(
            status="healthy" if db_status == "healthy" else "degraded",
            version=VERSION,
            environment=config.APP_ENV,
            database=db_status,
        )
        return {"ok": True, "data": health.model_dump()}

    app.include_router(api_router, prefix="/api/v1")

    return app


app = create_app()


# =============================================================================
# Development Server
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
    )
