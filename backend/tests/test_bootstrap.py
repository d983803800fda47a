"""
Soporte API — Startup Verification Tests
==========================================

What:  Readiness state, the table probe's SQLSTATE handling, tenacity retry
       behaviour of verify_database, and the require_database gate.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import DBAPIError

from soporte.bootstrap import (
    DatabaseReadiness,
    count_rows,
    require_database,
    verify_database,
)
from soporte.config import Settings
from soporte.exceptions import TableMissingError, UpstreamUnavailableError


class FakePgError(Exception):
    def __init__(self, sqlstate):
        super().__init__(f"sqlstate {sqlstate}")
        self.sqlstate = sqlstate


def _engine_failing_with(exc):
    engine = MagicMock()
    engine.connect.return_value.__aenter__ = AsyncMock(side_effect=exc)
    engine.connect.return_value.__aexit__ = AsyncMock(return_value=False)
    return engine


def _fast_settings(attempts=3):
    return Settings(
        startup_retry_attempts=attempts,
        startup_retry_min_wait=1,
        startup_retry_max_wait=1,
    )


class TestDatabaseReadiness:

    def test_starts_closed(self):
        readiness = DatabaseReadiness()
        assert readiness.ready is False
        assert readiness.checked_at is None

    def test_mark_ready_and_failed(self):
        readiness = DatabaseReadiness()
        readiness.mark_ready()
        assert readiness.ready is True and readiness.error is None

        readiness.mark_failed("gone")
        assert readiness.ready is False
        assert readiness.error == "gone"


class TestCountRows:

    @pytest.mark.asyncio
    async def test_missing_table(self):
        engine = _engine_failing_with(DBAPIError("SELECT", {}, FakePgError("42P01")))

        with pytest.raises(TableMissingError):
            await count_rows(engine)

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self):
        error = DBAPIError("SELECT", {}, FakePgError("28P01"))
        engine = _engine_failing_with(error)

        with pytest.raises(DBAPIError):
            await count_rows(engine)

    @pytest.mark.asyncio
    async def test_returns_count(self):
        conn = MagicMock()
        conn.execute = AsyncMock(return_value=MagicMock(scalar=MagicMock(return_value=7)))
        engine = MagicMock()
        engine.connect.return_value.__aenter__ = AsyncMock(return_value=conn)
        engine.connect.return_value.__aexit__ = AsyncMock(return_value=False)

        assert await count_rows(engine) == 7


class TestVerifyDatabase:

    @pytest.mark.asyncio
    async def test_success_opens_gate(self):
        readiness = DatabaseReadiness()
        with patch("soporte.bootstrap.count_rows", AsyncMock(return_value=3)):
            total = await verify_database(MagicMock(), readiness, _fast_settings())

        assert total == 3
        assert readiness.ready is True

    @pytest.mark.asyncio
    async def test_missing_table_is_not_retried(self):
        readiness = DatabaseReadiness()
        probe = AsyncMock(side_effect=TableMissingError("computadores"))

        with patch("soporte.bootstrap.count_rows", probe):
            with pytest.raises(TableMissingError):
                await verify_database(MagicMock(), readiness, _fast_settings())

        assert probe.await_count == 1
        assert readiness.ready is False
        assert "computadores" in readiness.error

    @pytest.mark.asyncio
    async def test_connection_errors_are_retried(self):
        readiness = DatabaseReadiness()
        probe = AsyncMock(side_effect=[OSError("connection refused"), 5])

        with patch("soporte.bootstrap.count_rows", probe):
            total = await verify_database(MagicMock(), readiness, _fast_settings())

        assert total == 5
        assert probe.await_count == 2
        assert readiness.ready is True

    @pytest.mark.asyncio
    async def test_gives_up_after_attempts(self):
        readiness = DatabaseReadiness()
        probe = AsyncMock(side_effect=OSError("connection refused"))

        with patch("soporte.bootstrap.count_rows", probe):
            with pytest.raises(OSError):
                await verify_database(MagicMock(), readiness, _fast_settings(attempts=1))

        assert readiness.ready is False
        assert readiness.error == "connection refused"


class TestRequireDatabase:

    def _request(self, readiness):
        return SimpleNamespace(app=SimpleNamespace(state=SimpleNamespace(readiness=readiness)))

    def test_closed_gate_raises(self):
        with pytest.raises(UpstreamUnavailableError):
            require_database(self._request(DatabaseReadiness()))

    def test_open_gate_passes(self):
        readiness = DatabaseReadiness()
        readiness.mark_ready()
        require_database(self._request(readiness))
