"""
Soporte API — Test Configuration (conftest.py)
================================================

What:  Shared pytest fixtures for the entire test suite.
How:   No real database or Supabase project is needed: sessions are mocks,
       local storage lives under tmp dirs, and Supabase Storage tests hand
       the store a MagicMock supabase client.

Fixture Hierarchy:
    Function-scoped:
    ├── mock_db_session: AsyncMock standing in for AsyncSession
    ├── local_store:     LocalImageStore rooted in tmp_path
    ├── png_bytes / png_data_uri: a tiny image and its data URI
    ├── make_computador: factory for Computador rows
    └── test_client:     httpx AsyncClient bound to the app (gate open)
"""

import base64
import os
import tempfile
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Override settings BEFORE any soporte import: the app is built at import time
os.environ["STORAGE_MODE"] = "local"
os.environ["UPLOADS_DIR"] = tempfile.mkdtemp(prefix="soporte_test_uploads_")
os.environ["SUPABASE_URL"] = ""
os.environ["SUPABASE_ANON_KEY"] = ""
os.environ["SUPABASE_SERVICE_ROLE_KEY"] = ""
os.environ["LOG_LEVEL"] = "WARNING"

from soporte.models.computador import Computador  # noqa: E402
from soporte.services.image_store import LocalImageStore  # noqa: E402


# 1x1 transparent PNG
PNG_BYTES = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="
)

REQUIRED_PAYLOAD = {
    "equipo_id": "PC-001",
    "serial_number": "SN123",
    "responsable": "Ana",
    "cargo": "Tech",
    "estado": "operativo",
    "windows_update": "si",
}


@pytest.fixture
def mock_db_session():
    """
    Mock async database session.

    Usage:
        result = MagicMock()
        result.scalar_one_or_none.return_value = row
        mock_db_session.execute.return_value = result
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.delete = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def local_store(tmp_path):
    return LocalImageStore(str(tmp_path / "uploads"))


@pytest.fixture
def png_bytes():
    return PNG_BYTES


@pytest.fixture
def png_data_uri():
    return "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode()


@pytest.fixture
def required_payload():
    return dict(REQUIRED_PAYLOAD)


@pytest.fixture
def make_computador():
    """Build a detached Computador row; keyword arguments override defaults."""

    def _make(**overrides) -> Computador:
        values = dict(
            id=1,
            equipo_id="PC-001",
            serial_number="SN123",
            responsable="Ana",
            cargo="Tech",
            estado="operativo",
            windows_update="si",
            imagenes=[],
            fecha_revision=datetime(2024, 6, 10, 9, 5, 7),
            fecha_actualizacion=datetime(2024, 6, 10, 9, 5, 7),
        )
        values.update(overrides)
        return Computador(**values)

    return _make


@pytest_asyncio.fixture
async def test_client(mock_db_session):
    """
    HTTPX AsyncClient talking to the app through ASGITransport.

    The lifespan does not run, so the readiness gate is opened here and the
    database session dependency is replaced by `mock_db_session`.
    """
    from soporte.database import get_db_session
    from soporte.main import app

    async def _override_session():
        yield mock_db_session

    app.dependency_overrides[get_db_session] = _override_session
    app.state.readiness.mark_ready()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
    app.state.readiness.mark_failed("reset by test fixture")
