"""Shared fixtures for the bmsindex test suite."""

from __future__ import annotations

import pytest

from bmsindex.core.index_db import IndexDb


@pytest.fixture
async def db() -> IndexDb:
    """An in-memory index with the current schema."""
    db = IndexDb(":memory:")
    await db.open()
    await db.ensure_schema()
    yield db
    await db.close()
