"""Shared test fixtures for edgelab."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog

from edgelab.utils.logging import set_correlation_id


@pytest.fixture(autouse=True)
def _reset_logging() -> Iterator[None]:
    """Keep run IDs, structlog config and stderr handlers from leaking between tests."""
    yield
    set_correlation_id("")
    structlog.reset_defaults()
    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler.formatter, structlog.stdlib.ProcessorFormatter):
            root.removeHandler(handler)


@pytest.fixture
def db_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> str:
    """Point AppConfig at a throwaway SQLite file."""
    path = str(tmp_path / "results.db")
    monkeypatch.setenv("EDGELAB_DB_PATH", path)
    return path
