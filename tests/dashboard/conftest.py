from __future__ import annotations

from typing import Any

import pytest

from dashboard.config.settings import Settings


class SleepRecorder:
    """Stands in for asyncio.sleep and records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        GITHUB_TOKEN="test-token",
        GITHUB_USERNAME="octo",
        CACHE_DIR=str(tmp_path / "cache"),
        DATA_DIR=str(tmp_path / "data"),
        DATABASE_URL=None,
        OPENAI_API_KEY=None,
    )


@pytest.fixture
def make_settings(tmp_path):
    def _make(**overrides: Any) -> Settings:
        values: dict[str, Any] = {
            "GITHUB_TOKEN": "test-token",
            "GITHUB_USERNAME": "octo",
            "CACHE_DIR": str(tmp_path / "cache"),
            "DATA_DIR": str(tmp_path / "data"),
            "DATABASE_URL": None,
            "OPENAI_API_KEY": None,
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()
