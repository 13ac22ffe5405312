"""
Pytest configuration and shared fixtures.

Contains common test fixtures and setup for all test modules.
"""

import os
from pathlib import Path
from typing import Any, Callable, Dict, Generator, List, Optional

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from connlog.config import NotificationSettings, RateLimitSettings, Settings, StorageSettings
from connlog.core.exceptions import NotificationError
from connlog.core.notifier import NotificationTarget
from connlog.main import create_app

ENV_VARS = [
    "RATE_LIMIT",
    "RATE_WINDOW_SECONDS",
    "DISCORD_WEBHOOK_URL",
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_CHAT_ID",
]


class RecordingTarget(NotificationTarget):
    """In-memory notification target, optionally failing every delivery."""

    def __init__(self, name: str = "recording", fail: bool = False) -> None:
        self.name = name
        self.fail = fail
        self.messages: List[str] = []

    @property
    def url(self) -> str:
        return f"memory://{self.name}"

    def build_payload(self, message: str) -> Dict[str, Any]:
        return {"content": message}

    async def send(self, session: Any, message: str) -> None:
        self.messages.append(message)
        if self.fail:
            raise NotificationError(target=self.name, message=f"{self.name} is down", status=503)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's environment out of the tests."""
    for name in list(os.environ):
        if name.startswith("CONNLOG_") or name in ENV_VARS:
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def log_path(tmp_path: Path) -> Path:
    """Connection log location inside a temporary directory."""
    return tmp_path / "logs" / "connections.jsonl"


@pytest.fixture
def test_settings(log_path: Path) -> Settings:
    """Settings with a small rate limit and no notification targets."""
    return Settings(
        log_level="DEBUG",
        limiter=RateLimitSettings(requests=2, window_seconds=60),
        storage=StorageSettings(log_path=log_path),
        notify=NotificationSettings(drain_timeout_seconds=2.0),
    )


@pytest.fixture
def app(test_settings: Settings) -> FastAPI:
    """Fresh application with its own limiter, journal and dispatcher."""
    return create_app(test_settings)


@pytest.fixture
def test_client(app: FastAPI) -> Generator[TestClient, None, None]:
    """FastAPI test client with lifespan events."""
    with TestClient(app) as client:
        yield client


@pytest.fixture
def make_target() -> Callable[..., RecordingTarget]:
    """Factory for recording notification targets."""
    def factory(name: str = "recording", fail: bool = False) -> RecordingTarget:
        return RecordingTarget(name=name, fail=fail)
    return factory


@pytest.fixture
def recording_target(make_target: Callable[..., RecordingTarget]) -> RecordingTarget:
    """A notification target that always succeeds."""
    return make_target()


@pytest.fixture
def read_log(log_path: Path) -> Callable[[Optional[Path]], List[str]]:
    """Return the raw lines of the connection log (empty if missing)."""
    def reader(path: Optional[Path] = None) -> List[str]:
        target = path or log_path
        if not target.exists():
            return []
        return target.read_text(encoding="utf-8").splitlines()
    return reader


@pytest.fixture
def login_payload() -> Dict[str, Any]:
    """Typical client payload."""
    return {
        "username": "alice",
        "password": "hunter2",
        "device": {
            "platform": "Linux x86_64",
            "language": "en-US",
            "screen": {"width": 1920, "height": 1080},
        },
    }
