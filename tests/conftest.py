"""Shared pytest fixtures."""
import os
import tempfile
from collections.abc import AsyncIterator

# Configuration is read at import time, so point it at a throwaway database first.
_DB_DIR = tempfile.mkdtemp(prefix="access-matrix-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/test.sqlite"
os.environ["ROUTE_SYNC_RATE_LIMIT"] = "1000/minute"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from access_matrix.core.database.engine import drop_db, init_db  # noqa: E402
from access_matrix.main import app as application  # noqa: E402


@pytest.fixture()
def app() -> FastAPI:
    return application


@pytest_asyncio.fixture()
async def database() -> AsyncIterator[None]:
    """Start every test from an empty schema."""
    await drop_db()
    await init_db()
    yield


@pytest_asyncio.fixture()
async def async_client(app: FastAPI, database: None) -> AsyncIterator[AsyncClient]:
    """Provide an HTTPX async client bound to the FastAPI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
