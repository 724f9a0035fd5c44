"""
Shared pytest fixtures and configuration for scribe tests.

This module provides:
- Settings cache isolation
- Small task and node builders used across the orchestration tests

Usage:
    Fixtures are auto-discovered by pytest.  Async tests are marked with
    ``@pytest.mark.asyncio``; fixtures stay synchronous and return builders.
"""

import sys
from pathlib import Path
from typing import Generator

import pytest

# Ensure scribe package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from scribe.core.settings import reset_settings


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark every test without an explicit marker as a unit test."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Settings Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def clean_settings_fixture(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Drop cached settings and SCRIBE_* variables around each test."""
    import os

    for key in list(os.environ):
        if key.startswith("SCRIBE_"):
            monkeypatch.delenv(key, raising=False)
    reset_settings()
    yield
    reset_settings()


# =============================================================================
# Builders
# =============================================================================


@pytest.fixture
def recorder() -> list:
    """A plain list tasks append to, for asserting execution order."""
    return []


@pytest.fixture
def make_tracer(recorder):
    """Build tasks that record their forward and backward passes."""

    def _make(label: str):
        async def _trace(ctx, next):
            recorder.append(f"{label}:fwd")
            await next()
            recorder.append(f"{label}:bwd")

        return _trace

    return _make
