"""
pytest configuration и fixtures для всех тестов
"""

import asyncio
import pytest
import sys
import os
from typing import List
from unittest.mock import AsyncMock, Mock

# Добавляем путь к коду
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from course_bot.schemas import VerificationReason, VerificationResult  # noqa: E402
from course_bot.services import (  # noqa: E402
    CredentialStore,
    InMemoryRecordStore,
    SessionStore,
)
from secrets_manager import SecretsManager  # noqa: E402
from security_middleware import TokenBucketLimiter  # noqa: E402


# ==================== TEST DOUBLES ====================

class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedOracle:
    """Order oracle returning queued results and recording every call."""

    def __init__(self, *results: VerificationResult):
        self.results: List[VerificationResult] = list(results)
        self.calls = []

    def queue(self, *results: VerificationResult) -> None:
        self.results.extend(results)

    async def verify(self, order_id: str, email: str) -> VerificationResult:
        self.calls.append((order_id, email))
        if not self.results:
            raise AssertionError(f"unexpected oracle call for order {order_id}")
        return self.results.pop(0)

    def get_stats(self):
        return {"calls": len(self.calls)}


def paid(email: str = "a@b.com") -> VerificationResult:
    return VerificationResult.verified(order_email=email, order_status="completed")


def rejected(reason: VerificationReason) -> VerificationResult:
    return VerificationResult.rejected(reason)


class FakeUpdater:
    """Stand-in for telegram.ext.Updater."""

    def __init__(self, app):
        self.app = app
        self.running = False

    async def start_polling(self, allowed_updates=None):
        self.app.log.append(("poll", self.app.token))
        self.running = True

    async def stop(self):
        self.app.log.append(("stop_polling", self.app.token))
        self.running = False


class FakeApplication:
    """Stand-in for telegram.ext.Application that logs lifecycle calls."""

    def __init__(self, token, log, fail_stop=False, fail_start=False, api_url=None):
        self.token = token
        self.api_url = api_url
        self.log = log
        self.fail_stop = fail_stop
        self.fail_start = fail_start
        self.running = False
        self.handlers = []
        self.updater = FakeUpdater(self)
        self.bot = Mock(send_message=AsyncMock(return_value="sent"), set_my_commands=AsyncMock())

    def add_handler(self, handler):
        self.handlers.append(handler)

    async def initialize(self):
        await asyncio.sleep(0)
        self.log.append(("initialize", self.token))

    async def start(self):
        if self.fail_start:
            raise RuntimeError("network unreachable")
        self.running = True

    async def stop(self):
        if self.fail_stop:
            raise RuntimeError("already gone")
        self.running = False

    async def shutdown(self):
        self.log.append(("shutdown", self.token))


class FakeFactory:

    def __init__(self):
        self.log = []
        self.created = []
        self.fail_stop = False
        self.fail_start = False

    def __call__(self, token, api_url=None):
        app = FakeApplication(token, self.log, fail_stop=self.fail_stop, fail_start=self.fail_start,
                              api_url=api_url)
        self.created.append(app)
        return app

    def live(self):
        return [app for app in self.created if app.running and app.updater.running]


# ==================== GLOBAL FIXTURES ====================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def record_store():
    return InMemoryRecordStore()


@pytest.fixture
def secrets():
    return SecretsManager()


@pytest.fixture
def credential_store(record_store, secrets):
    return CredentialStore(record_store, secrets)


@pytest.fixture
def session_store(clock):
    return SessionStore(ttl_seconds=86400, cleanup_interval=300, clock=clock)


@pytest.fixture
def chat_limiter(clock):
    return TokenBucketLimiter("chat", points=20, duration_seconds=60, clock=clock)


@pytest.fixture
def oracle():
    return ScriptedOracle()


# ==================== MARKERS ====================

def pytest_configure(config):
    """Регистрируем custom markers"""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "security: marks tests as security tests"
    )


def pytest_collection_modifyitems(config, items):
    """Модифицируем items для добавления маркеров"""
    for item in items:
        if "integration" in item.nodeid:
            item.add_marker(pytest.mark.integration)
        if "rate_limit" in item.nodeid or "secret" in item.nodeid:
            item.add_marker(pytest.mark.security)
