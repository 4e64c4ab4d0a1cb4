"""Shared fixtures: an AsyncSession stand-in."""
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

import pytest


class FakeSession:
    """Records commits/rollbacks and supports `async with session.begin_nested()`."""

    def __init__(self):
        self.execute = AsyncMock()
        self.commit = AsyncMock()
        self.rollback = AsyncMock()
        self.flush = AsyncMock()
        self.refresh = AsyncMock()
        self.add = MagicMock()
        self.savepoints = 0
        self.savepoint_rollbacks = 0

    @asynccontextmanager
    async def begin_nested(self):
        self.savepoints += 1
        try:
            yield self
        except Exception:
            self.savepoint_rollbacks += 1
            raise


@pytest.fixture
def session():
    return FakeSession()
