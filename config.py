# config.py
# Централизованная конфигурация для Course Gate Bot
# Version: 1.0.0

import os
import logging
from dotenv import load_dotenv

load_dotenv()

# ============================================================================
# TELEGRAM CONFIGURATION
# ============================================================================
# Fallback token; the admin-managed "telegram" configuration takes precedence
TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN", "")
TELEGRAM_API_URL = os.getenv("TELEGRAM_API_URL", "https://api.telegram.org")

# ============================================================================
# WOOCOMMERCE CONFIGURATION
# ============================================================================
WOOCOMMERCE_STORE_URL = os.getenv("WOOCOMMERCE_STORE_URL", "")
WOOCOMMERCE_CONSUMER_KEY = os.getenv("WOOCOMMERCE_CONSUMER_KEY", "")
WOOCOMMERCE_CONSUMER_SECRET = os.getenv("WOOCOMMERCE_CONSUMER_SECRET", "")
WOOCOMMERCE_API_VERSION = os.getenv("WOOCOMMERCE_API_VERSION", "wc/v3")
ORDER_VERIFY_TIMEOUT = float(os.getenv("ORDER_VERIFY_TIMEOUT", "10"))
PAID_ORDER_STATUSES = tuple(
    s.strip() for s in os.getenv("PAID_ORDER_STATUSES", "completed,processing").split(",") if s.strip()
)

# ============================================================================
# DATABASE CONFIGURATION
# ============================================================================
DATABASE_PATH = os.getenv("DATABASE_PATH", "./course_bot.db")

# ============================================================================
# RATE LIMITING
# ============================================================================
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
RATE_LIMIT_CHAT_POINTS = int(os.getenv("RATE_LIMIT_CHAT_POINTS", "20"))
RATE_LIMIT_CHAT_DURATION = int(os.getenv("RATE_LIMIT_CHAT_DURATION", "60"))  # seconds
RATE_LIMIT_API_POINTS = int(os.getenv("RATE_LIMIT_API_POINTS", "100"))
RATE_LIMIT_API_DURATION = int(os.getenv("RATE_LIMIT_API_DURATION", "60"))
RATE_LIMIT_LOGIN_POINTS = int(os.getenv("RATE_LIMIT_LOGIN_POINTS", "5"))
RATE_LIMIT_LOGIN_DURATION = int(os.getenv("RATE_LIMIT_LOGIN_DURATION", "900"))  # 15 minutes

# ============================================================================
# CONVERSATION SESSIONS
# ============================================================================
SESSION_TTL_SECONDS = int(os.getenv("SESSION_TTL_SECONDS", "86400"))  # 24 hours
SESSION_CLEANUP_INTERVAL = int(os.getenv("SESSION_CLEANUP_INTERVAL", "300"))

# ============================================================================
# BOT BEHAVIOR
# ============================================================================
BOT_MAX_MESSAGE_LENGTH = int(os.getenv("BOT_MAX_MESSAGE_LENGTH", "4096"))
MENU_SUMMARY_LENGTH = int(os.getenv("MENU_SUMMARY_LENGTH", "300"))
SUPPORT_CONTACT = os.getenv("SUPPORT_CONTACT", "support")

# ============================================================================
# ADMIN API
# ============================================================================
API_HOST = os.getenv("API_HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "*").split(",")
# Bearer key the dashboard sends; empty disables the check (development only)
ADMIN_API_KEY = os.getenv("ADMIN_API_KEY", "")

# ============================================================================
# LOGGING CONFIGURATION
# ============================================================================
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_TO_FILE = os.getenv("LOG_TO_FILE", "false").lower() == "true"
LOG_FILE_PATH = os.getenv("LOG_FILE_PATH", "./logs/bot.log")
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# ============================================================================
# DEVELOPMENT / PRODUCTION
# ============================================================================
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")


def setup_logging(level: str = None) -> None:
    """Настроить корневой логгер (консоль + опционально файл)."""
    handlers = [logging.StreamHandler()]
    if LOG_TO_FILE:
        log_dir = os.path.dirname(LOG_FILE_PATH)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(LOG_FILE_PATH))

    logging.basicConfig(
        level=getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
    )
    # httpx logs every request URL, which includes order ids
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ============================================================================
# VALIDATION
# ============================================================================
def validate_config():
    """Проверить критические значения конфигурации"""
    errors = []

    if not TELEGRAM_BOT_TOKEN:
        errors.append("⚠️ TELEGRAM_BOT_TOKEN не установлен (нужен токен в настройках админки)")

    if not WOOCOMMERCE_STORE_URL:
        errors.append("⚠️ WOOCOMMERCE_STORE_URL не установлен")

    if not WOOCOMMERCE_CONSUMER_KEY or not WOOCOMMERCE_CONSUMER_SECRET:
        errors.append("⚠️ WooCommerce consumer key/secret не установлены")

    if not ADMIN_API_KEY:
        errors.append("⚠️ ADMIN_API_KEY не установлен, админ API открыт без ключа")

    logger = logging.getLogger("config")
    for error in errors:
        logger.warning(error)

    if errors and ENVIRONMENT == "production" and not TELEGRAM_BOT_TOKEN and not WOOCOMMERCE_STORE_URL:
        raise ValueError("Критические параметры конфигурации отсутствуют!")

    return len(errors) == 0
