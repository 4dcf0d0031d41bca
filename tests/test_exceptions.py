"""
Tests for user-facing error messages and handle_exception logging.
"""

import logging
from unittest.mock import patch

from exceptions import (
    GENERIC_ERROR_MESSAGE,
    InvalidInputError,
    PersistenceError,
    VerificationFailedError,
    handle_exception,
    support_hint,
)


class TestUserMessages:

    def test_invalid_input_reprompts(self):
        assert InvalidInputError("Please try again.").to_user_message() == "❌ Please try again."

    def test_verification_failure_gets_marker(self):
        assert VerificationFailedError("Order not found.").to_user_message() == "❌ Order not found."

    def test_empty_verification_failure_points_to_support(self):
        with patch("config.SUPPORT_CONTACT", "@course_help"):
            message = VerificationFailedError("").to_user_message()
        assert "@course_help" in message

    def test_support_hint_follows_config(self):
        with patch("config.SUPPORT_CONTACT", "help@school.example"):
            assert support_hint() == "contact help@school.example"
            assert "help@school.example" in PersistenceError("db down").to_user_message()


class TestHandleException:

    def test_known_error_logs_user_and_context(self, caplog):
        with caplog.at_level(logging.INFO, logger="exceptions"):
            text = handle_exception(VerificationFailedError("Order not found."), user_id=555, context="/start")

        assert text == "❌ Order not found."
        assert "555" in caplog.text
        assert "/start" in caplog.text

    def test_unexpected_error_is_generic_and_logged(self, caplog):
        with caplog.at_level(logging.ERROR, logger="exceptions"):
            text = handle_exception(RuntimeError("boom"), user_id=42, context="callback")

        assert text == GENERIC_ERROR_MESSAGE
        assert "boom" not in text
        assert "RuntimeError" in caplog.text
        assert "callback" in caplog.text
