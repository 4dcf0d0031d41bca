"""
Tests for runtime-managed API configurations and secret masking.
"""

import logging

import pytest
from unittest.mock import Mock, patch

from course_bot.services import CredentialStore, TELEGRAM, WOOCOMMERCE
from exceptions import ValidationError
from secrets_manager import SecretsFilter, SecretsManager


class TestCredentialStore:

    def test_initialize_defaults_creates_missing(self, credential_store, record_store):
        with patch("config.TELEGRAM_BOT_TOKEN", "env-token-123456"):
            credential_store.initialize_defaults()

        telegram = record_store.get_api_configuration(TELEGRAM)
        assert telegram.credentials["bot_token"] == "env-token-123456"
        assert record_store.get_api_configuration(WOOCOMMERCE) is not None

    def test_initialize_defaults_keeps_existing(self, credential_store, record_store):
        credential_store.update(TELEGRAM, credentials={"bot_token": "admin-token-123456"})
        with patch("config.TELEGRAM_BOT_TOKEN", "env-token-123456"):
            credential_store.initialize_defaults()
        assert record_store.get_api_configuration(TELEGRAM).credentials["bot_token"] == "admin-token-123456"

    def test_initialize_defaults_survives_store_errors(self, secrets):
        broken = Mock()
        broken.get_api_configuration.side_effect = RuntimeError("db down")
        CredentialStore(broken, secrets).initialize_defaults()

    def test_get_inactive_is_none(self, credential_store):
        credential_store.update(WOOCOMMERCE, url="https://shop.example", is_active=False)
        assert credential_store.get(WOOCOMMERCE) is None

    def test_update_merges_credentials(self, credential_store):
        credential_store.update(WOOCOMMERCE, url="https://shop.example",
                                credentials={"consumer_key": "ck_1", "consumer_secret": "cs_1"})
        updated = credential_store.update(WOOCOMMERCE, credentials={"consumer_key": "ck_2",
                                                                    "consumer_secret": None},
                                          updated_by=9)
        assert updated.url == "https://shop.example"
        assert updated.credentials == {"consumer_key": "ck_2", "consumer_secret": "cs_1"}
        assert updated.updated_by == 9

    def test_bot_token_prefers_stored_value(self, credential_store):
        credential_store.update(TELEGRAM, credentials={"bot_token": "stored-token-123456"})
        with patch("config.TELEGRAM_BOT_TOKEN", "env-token-123456"):
            assert credential_store.get_bot_token() == "stored-token-123456"

    def test_bot_token_falls_back_to_environment(self, credential_store):
        with patch("config.TELEGRAM_BOT_TOKEN", "env-token-123456"):
            assert credential_store.get_bot_token() == "env-token-123456"

    def test_no_token_anywhere(self, credential_store):
        with patch("config.TELEGRAM_BOT_TOKEN", ""):
            assert credential_store.get_bot_token() is None

    def test_require_complete_rejects_missing_secret(self, credential_store, record_store):
        with pytest.raises(ValidationError) as excinfo:
            credential_store.update(WOOCOMMERCE, url="https://shop.example",
                                    credentials={"consumer_key": "ck_1"}, require_complete=True)
        assert excinfo.value.context["fields"] == ["consumer_secret"]
        assert record_store.get_api_configuration(WOOCOMMERCE) is None

    def test_require_complete_skipped_for_inactive(self, credential_store):
        saved = credential_store.update(WOOCOMMERCE, url="https://shop.example",
                                        is_active=False, require_complete=True)
        assert saved.is_active is False

    def test_require_complete_accepts_merged_credentials(self, credential_store):
        credential_store.update(WOOCOMMERCE, credentials={"consumer_key": "ck_1", "consumer_secret": "cs_1"})
        saved = credential_store.update(WOOCOMMERCE, credentials={"consumer_key": "ck_2"},
                                        require_complete=True)
        assert saved.credentials == {"consumer_key": "ck_2", "consumer_secret": "cs_1"}

    def test_empty_bot_token_is_incomplete(self):
        with pytest.raises(ValidationError):
            CredentialStore.check_complete(TELEGRAM, {"bot_token": ""})

    def test_bot_api_url_prefers_stored_value(self, credential_store):
        credential_store.update(TELEGRAM, url="http://localhost:8081/",
                                credentials={"bot_token": "stored-token-123456"})
        assert credential_store.get_bot_api_url() == "http://localhost:8081"

    def test_bot_api_url_falls_back_to_environment(self, credential_store):
        with patch("config.TELEGRAM_API_URL", "https://api.telegram.org"):
            assert credential_store.get_bot_api_url() == "https://api.telegram.org"

    def test_masked_hides_secrets(self, credential_store):
        credential_store.update(TELEGRAM, url="https://api.telegram.org",
                                credentials={"bot_token": "123456789:ABCDEFGHIJKLMNOP"})
        masked = credential_store.masked(TELEGRAM)
        assert masked["credentials"]["bot_token"] == "••••••••MNOP"
        assert masked["url"] == "https://api.telegram.org"
        assert credential_store.masked("missing") is None


class TestSecretsManager:

    def test_mask_value(self):
        assert SecretsManager.mask_value("") == ""
        assert SecretsManager.mask_value("short") == "[REDACTED]"
        assert SecretsManager.mask_value("abcdefghijklmnop") == "••••••••mnop"

    def test_sanitize_string(self, secrets):
        secrets.register_secret("super-secret-token")
        assert secrets.sanitize_string("token=super-secret-token") == "token=[REDACTED]"

    def test_short_values_not_registered(self, secrets):
        secrets.register_secret("abc")
        assert secrets.sanitize_string("abc") == "abc"

    def test_log_filter_scrubs_records(self, secrets):
        secrets.register_secret("123456789:ABCDEFGHIJKLMNOP")
        record = logging.LogRecord("x", logging.INFO, __file__, 1,
                                   "using %s", ("123456789:ABCDEFGHIJKLMNOP",), None)
        assert SecretsFilter(secrets).filter(record)
        assert record.getMessage() == "using [REDACTED]"


@pytest.mark.parametrize("name", [TELEGRAM, WOOCOMMERCE])
def test_get_missing_configuration_is_none(credential_store, name):
    assert credential_store.get(name) is None
