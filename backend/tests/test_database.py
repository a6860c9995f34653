"""
Unit tests for the development table reset.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from buildledger.core import database
from buildledger.models import Base


def fake_engine():
    """Engine whose begin() yields a connection with an async run_sync."""
    conn = MagicMock()
    conn.run_sync = AsyncMock()
    engine = MagicMock()
    engine.begin.return_value.__aenter__.return_value = conn
    return engine, conn


class TestResetTables:
    """Tests for reset_tables."""

    @pytest.mark.asyncio
    async def test_drop_then_create(self):
        """Test tables are dropped before being created."""
        engine, conn = fake_engine()

        with patch.object(database, "engine", engine):
            tables = await database.reset_tables()

        calls = [c.args[0] for c in conn.run_sync.await_args_list]
        assert calls == [Base.metadata.drop_all, Base.metadata.create_all]
        assert tables == ["documents"]

    @pytest.mark.asyncio
    async def test_create_only(self):
        """Test drop=False keeps existing tables."""
        engine, conn = fake_engine()

        with patch.object(database, "engine", engine):
            await database.reset_tables(drop=False)

        calls = [c.args[0] for c in conn.run_sync.await_args_list]
        assert calls == [Base.metadata.create_all]

    @pytest.mark.asyncio
    async def test_refused_in_production(self):
        """Test the reset never runs in production."""
        engine, conn = fake_engine()
        production = MagicMock(is_production=True)

        with patch.object(database, "engine", engine), patch.object(database, "settings", production):
            with pytest.raises(RuntimeError):
                await database.reset_tables()

        conn.run_sync.assert_not_awaited()
