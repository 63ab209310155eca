"""Shared fixtures: temp settings and a sleep recorder in place of real delays."""

from __future__ import annotations

import pytest

from app.config import Settings, get_settings


@pytest.fixture(autouse=True)
def _env_setup(monkeypatch, tmp_path):
    """Use a temp DB and a fake client id; clear the settings cache."""
    monkeypatch.setenv("DB_PATH", str(tmp_path / "test.db"))
    monkeypatch.setenv("SPOTIFY_CLIENT_ID", "test_cid")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    return get_settings()


class SleepRecorder:
    """Stand-in for ``asyncio.sleep``: records delays, returns at once."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)

    @property
    def total(self) -> float:
        return sum(self.calls)


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()
