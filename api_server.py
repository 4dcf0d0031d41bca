"""
Admin API for Course Gate Bot.

Exposes the operations the dashboard needs from the bot process: reading
and rotating API credentials, rebuilding the bot connection, and sending
notifications to verified users.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

import config
from course_bot.core import BotCore, get_bot_core
from course_bot.services import TELEGRAM, WOOCOMMERCE
from exceptions import (
    ConfigurationMissingError,
    CourseBotException,
    NotFoundError,
    ValidationError,
)
from secrets_manager import secrets_manager
from security_middleware import (
    make_api_key_dependency,
    make_rate_limit_middleware,
    security_headers_middleware,
)

logger = logging.getLogger("api_server")

# =============================================================================
# REQUEST / RESPONSE MODELS
# =============================================================================


class TelegramConfigPayload(BaseModel):
    bot_token: str = Field(..., min_length=1, max_length=256)
    url: Optional[str] = None
    is_active: Optional[bool] = None


class WooCommerceConfigPayload(BaseModel):
    """Omitted fields keep their stored value."""
    url: Optional[str] = Field(default=None, max_length=2048)
    consumer_key: Optional[str] = Field(default=None, min_length=1)
    consumer_secret: Optional[str] = Field(default=None, min_length=1)
    is_active: Optional[bool] = None


class NotificationPayload(BaseModel):
    user_ids: List[int] = Field(..., min_length=1)
    message: str = Field(..., min_length=1, max_length=config.BOT_MAX_MESSAGE_LENGTH)


class HealthResponse(BaseModel):
    status: str
    bot_running: bool
    last_error: Optional[str] = None
    uptime_seconds: float


class RebuildResponse(BaseModel):
    success: bool
    last_error: Optional[str] = None


class ConfigUpdateResponse(BaseModel):
    configuration: Dict[str, Any]
    bot_rebuilt: Optional[bool] = None
    last_error: Optional[str] = None


class NotificationResponse(BaseModel):
    sent: int
    skipped: int
    failed: int


def get_admin_id(request: Request) -> Optional[int]:
    """Admin id forwarded by the dashboard, if any."""
    raw = request.headers.get("X-Admin-Id", "").strip()
    return int(raw) if raw.isascii() and raw.isdigit() else None


# =============================================================================
# FASTAPI APP
# =============================================================================


def create_app(bot_core: BotCore = None, manage_lifecycle: bool = True) -> FastAPI:
    """
    Build the admin API around a bot core.

    Args:
        bot_core: Core to expose; the process-wide one by default
        manage_lifecycle: Start and stop the bot with the app
    """
    core = bot_core or get_bot_core()
    start_time = time.monotonic()
    require_api_key = make_api_key_dependency(core.rate_limiters.login)
    if config.ADMIN_API_KEY:
        secrets_manager.register_secret(config.ADMIN_API_KEY)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("=" * 70)
        logger.info("🚀 Starting Course Gate Bot API")
        logger.info("=" * 70)
        if manage_lifecycle:
            started = await core.startup()
            if not started:
                logger.warning("⚠️ API is up but the bot is not running; configure it via /api/config/telegram")
        yield
        if manage_lifecycle:
            await core.shutdown()

    app = FastAPI(
        title="Course Gate Bot API",
        version="1.0.0",
        description="Admin surface for the course verification bot",
        lifespan=lifespan,
    )
    app.state.bot_core = core

    # Registered last runs first: rate limiting wraps the security headers
    app.middleware("http")(security_headers_middleware)
    app.middleware("http")(make_rate_limit_middleware(core.rate_limiters.api))
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=["*"],
    )

    # =========================================================================
    # ERROR HANDLERS
    # =========================================================================

    @app.exception_handler(CourseBotException)
    async def course_bot_exception_handler(request: Request, exc: CourseBotException):
        if isinstance(exc, NotFoundError):
            status_code = 404
        elif isinstance(exc, ConfigurationMissingError):
            status_code = 503
        elif isinstance(exc, ValidationError):
            status_code = 400
        else:
            status_code = 500
        logger.warning(f"⚠️ {exc.error_code} on {request.url.path}: {exc.message}")
        return JSONResponse(status_code=status_code,
                            content={"message": exc.message, "error_code": exc.error_code})

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(f"🔥 Unhandled exception on {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(status_code=500, content={"message": "Internal server error"})

    # =========================================================================
    # ROUTES
    # =========================================================================

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        running = core.connection_manager.is_running
        return HealthResponse(
            status="healthy" if running else "degraded",
            bot_running=running,
            last_error=core.connection_manager.last_error,
            uptime_seconds=round(time.monotonic() - start_time, 2),
        )

    @app.get("/api/stats", dependencies=[Depends(require_api_key)])
    async def get_stats():
        return core.get_stats()

    @app.get("/api/activities", dependencies=[Depends(require_api_key)])
    async def list_activities(limit: int = Query(default=20, ge=1, le=200)):
        return [activity.model_dump(mode="json") for activity in core.record_store.list_activities(limit)]

    @app.get("/api/config/{name}", dependencies=[Depends(require_api_key)])
    async def get_configuration(name: str):
        masked = core.credential_store.masked(name) if name in (TELEGRAM, WOOCOMMERCE) else None
        if masked is None:
            raise NotFoundError(f"API configuration '{name}' not found")
        return masked

    @app.put("/api/config/telegram", response_model=ConfigUpdateResponse,
             dependencies=[Depends(require_api_key)])
    async def update_telegram_configuration(payload: TelegramConfigPayload, request: Request):
        admin_id = get_admin_id(request)
        core.credential_store.update(
            TELEGRAM,
            url=payload.url,
            credentials={"bot_token": payload.bot_token},
            updated_by=admin_id,
            is_active=payload.is_active,
            require_complete=True,
        )
        core.audit.admin_event("Updated Telegram API configuration", admin_id=admin_id)
        rebuilt = await core.rebuild(admin_id)
        return ConfigUpdateResponse(
            configuration=core.credential_store.masked(TELEGRAM),
            bot_rebuilt=rebuilt,
            last_error=None if rebuilt else core.connection_manager.last_error,
        )

    @app.put("/api/config/woocommerce", response_model=ConfigUpdateResponse,
             dependencies=[Depends(require_api_key)])
    async def update_woocommerce_configuration(payload: WooCommerceConfigPayload, request: Request):
        admin_id = get_admin_id(request)
        core.credential_store.update(
            WOOCOMMERCE,
            url=payload.url,
            credentials={
                "consumer_key": payload.consumer_key,
                "consumer_secret": payload.consumer_secret,
            },
            updated_by=admin_id,
            is_active=payload.is_active,
            require_complete=True,
        )
        core.audit.admin_event("Updated WooCommerce API configuration", admin_id=admin_id)
        return ConfigUpdateResponse(configuration=core.credential_store.masked(WOOCOMMERCE))

    @app.post("/api/bot/rebuild", response_model=RebuildResponse,
              dependencies=[Depends(require_api_key)])
    async def rebuild_bot(request: Request):
        rebuilt = await core.rebuild(get_admin_id(request))
        if not rebuilt:
            raise HTTPException(status_code=503, detail=core.connection_manager.last_error or "Rebuild failed")
        return RebuildResponse(success=True)

    @app.post("/api/notifications", response_model=NotificationResponse,
              dependencies=[Depends(require_api_key)])
    async def send_notification(payload: NotificationPayload, request: Request):
        stats = await core.notifications.send(payload.user_ids, payload.message,
                                              admin_id=get_admin_id(request))
        return NotificationResponse(**stats)

    return app
