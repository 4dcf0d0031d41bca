"""
Credential Store - настройки внешних API (Telegram, WooCommerce).

Configurations live in the record store so the admin dashboard can change
them at runtime; environment variables only seed the first run.
"""

import logging
from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, ValidationError as PydanticValidationError

import config
from exceptions import ValidationError
from secrets_manager import SecretsManager, secrets_manager as default_secrets

from ..schemas import ApiConfigurationSchema, TelegramCredentials, WooCommerceCredentials

logger = logging.getLogger("credential_store")

TELEGRAM = "telegram"
WOOCOMMERCE = "woocommerce"

CREDENTIAL_MODELS: Dict[str, type[BaseModel]] = {
    TELEGRAM: TelegramCredentials,
    WOOCOMMERCE: WooCommerceCredentials,
}


class CredentialStore:
    """Named API configurations with runtime updates."""

    def __init__(self, record_store, secrets: SecretsManager = None):
        self.record_store = record_store
        self.secrets = secrets or default_secrets

    def _register(self, configuration: ApiConfigurationSchema) -> None:
        for value in configuration.credentials.values():
            self.secrets.register_secret(value)

    def initialize_defaults(self) -> None:
        """Create missing configurations from the environment; existing ones are left alone."""
        defaults = {
            TELEGRAM: ApiConfigurationSchema(
                name=TELEGRAM,
                url=config.TELEGRAM_API_URL,
                credentials={"bot_token": config.TELEGRAM_BOT_TOKEN},
            ),
            WOOCOMMERCE: ApiConfigurationSchema(
                name=WOOCOMMERCE,
                url=config.WOOCOMMERCE_STORE_URL,
                credentials={
                    "consumer_key": config.WOOCOMMERCE_CONSUMER_KEY,
                    "consumer_secret": config.WOOCOMMERCE_CONSUMER_SECRET,
                },
            ),
        }

        for name, default in defaults.items():
            try:
                if self.record_store.get_api_configuration(name) is None:
                    self.record_store.save_api_configuration(default)
                    logger.info(f"✅ Default {name} API configuration created")
            except Exception as e:
                logger.error(f"❌ Failed to initialize {name} API configuration: {e}")

    def get(self, name: str) -> Optional[ApiConfigurationSchema]:
        """Active configuration for ``name`` or None."""
        configuration = self.record_store.get_api_configuration(name)
        if configuration is None or not configuration.is_active:
            logger.error(f"❌ {name} API configuration not found or inactive")
            return None
        self._register(configuration)
        return configuration

    def update(self, name: str, url: Optional[str] = None,
               credentials: Optional[Dict[str, str]] = None,
               updated_by: Optional[int] = None,
               is_active: Optional[bool] = None,
               require_complete: bool = False) -> ApiConfigurationSchema:
        """
        Merge the given fields into the stored configuration and persist it.

        Raises:
            ValidationError: ``require_complete`` is set and the merged, active
                configuration is missing a credential
        """
        current = self.record_store.get_api_configuration(name) or ApiConfigurationSchema(name=name)

        merged = dict(current.credentials)
        if credentials:
            merged.update({k: v for k, v in credentials.items() if v is not None})

        active = current.is_active if is_active is None else is_active
        if require_complete and active:
            self.check_complete(name, merged)

        updated = current.model_copy(update={
            "url": url if url is not None else current.url,
            "credentials": merged,
            "is_active": active,
            "updated_by": updated_by,
            "updated_at": datetime.now(),
        })
        saved = self.record_store.save_api_configuration(updated)
        self._register(saved)
        logger.info(f"✅ {name} API configuration updated by admin {updated_by}")
        return saved

    @staticmethod
    def check_complete(name: str, credentials: Dict[str, str]) -> None:
        """Raise ValidationError naming the credentials ``name`` still lacks."""
        model = CREDENTIAL_MODELS.get(name)
        if model is None:
            return
        try:
            model.model_validate(credentials)
        except PydanticValidationError as e:
            missing = sorted({str(error["loc"][0]) for error in e.errors()})
            raise ValidationError(f"{name} configuration is missing: {', '.join(missing)}",
                                  context={"fields": missing}) from e

    def get_bot_token(self) -> Optional[str]:
        """Bot token from the telegram configuration, falling back to the environment."""
        configuration = self.get(TELEGRAM)
        token = configuration.credentials.get("bot_token") if configuration else None
        if not token:
            token = config.TELEGRAM_BOT_TOKEN or None
        if token:
            self.secrets.register_secret(token)
        return token

    def get_bot_api_url(self) -> str:
        """Bot API server from the telegram configuration, falling back to the environment."""
        configuration = self.record_store.get_api_configuration(TELEGRAM)
        url = configuration.url if configuration is not None and configuration.is_active else ""
        return (url or config.TELEGRAM_API_URL).rstrip("/")

    def masked(self, name: str) -> Optional[Dict]:
        """Configuration safe to show in the dashboard."""
        configuration = self.record_store.get_api_configuration(name)
        if configuration is None:
            return None
        data = configuration.model_dump(mode="json")
        data["credentials"] = self.secrets.sanitize_dict(configuration.credentials)
        return data
