"""Pytest configuration and common fixtures."""

import logging
import os
import sys
import uuid
import warnings
from pathlib import Path

from dotenv import load_dotenv

# Try to load test-specific environment file if it exists
test_env_file = Path(__file__).parent / ".env.test"
if test_env_file.exists():
    load_dotenv(test_env_file)

# Set environment variables BEFORE any selfheal imports
os.environ.setdefault("SELFHEAL_ENV", "testing")
os.environ.setdefault("SELFHEAL_STORAGE_BACKEND", "memory")

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from typing import List

import pytest

from selfheal.core.config import reset_settings
from selfheal.monitoring.failure_store import FailureStore
from selfheal.monitoring.persistence import InMemoryKeyValueStore
from selfheal.monitoring.remediation import RemediationRegistry


def pytest_configure(config):
    """Configure pytest environment before tests run."""
    warnings.filterwarnings("ignore", message="coroutine.*was never awaited")


@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch):
    """Isolate settings for every test."""
    monkeypatch.setenv("SELFHEAL_ENV", "testing")
    monkeypatch.setenv("SELFHEAL_STORAGE_BACKEND", "memory")
    reset_settings()
    yield
    reset_settings()


class ListHandler(logging.Handler):
    """Collects formatted stdlib log messages."""

    def __init__(self) -> None:
        super().__init__(level=logging.DEBUG)
        self.messages: List[str] = []
        self.records: List[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)
        self.messages.append(record.getMessage())


@pytest.fixture
def kv_store():
    """Empty in-memory snapshot store."""
    return InMemoryKeyValueStore()


@pytest.fixture
def store(kv_store):
    """Failure store with a fixed session and origin."""
    return FailureStore(kv_store, session_id="session_test", origin="pytest")


@pytest.fixture
def registry():
    """Registry with the built-in rules and a no-op reclaim."""
    return RemediationRegistry(reclaim=lambda: 0)


@pytest.fixture
def empty_registry():
    """Registry without built-in rules."""
    return RemediationRegistry(include_builtins=False)


@pytest.fixture
def channel():
    """Isolated stdlib logger with a collecting handler."""
    log = logging.getLogger(f"selfheal.test.{uuid.uuid4().hex}")
    log.setLevel(logging.DEBUG)
    log.propagate = False
    handler = ListHandler()
    log.addHandler(handler)
    log.handler = handler  # type: ignore[attr-defined]
    yield log
    log.removeHandler(handler)

