import inspect
from unittest.mock import MagicMock

import httpx
import pytest
import pytest_asyncio


def pytest_addoption(parser):
    """Add --backend option for choosing the integration database."""
    parser.addoption(
        "--backend",
        action="store",
        default="sqlite",
        choices=["sqlite", "postgres"],
        help="Database backend for integration tests (default: sqlite)",
    )


@pytest.fixture(scope="session")
def app():
    # Import lazily so test collection doesn't accidentally trigger app startup.
    from interview_analyzer.app import app as fastapi_app

    return fastapi_app


@pytest.fixture()
def mock_db_session():
    # Session-like mock used for dependency overrides in router tests.
    db = MagicMock(name="db_session")
    db.rollback = MagicMock(name="rollback")
    db.close = MagicMock(name="close")
    return db


@pytest.fixture()
def override_get_db(app, mock_db_session):
    """
    Override FastAPI's `get_db` dependency so route tests don't touch a real DB.
    """
    from interview_analyzer.database import get_db

    def _override():
        yield mock_db_session

    app.dependency_overrides[get_db] = _override
    try:
        yield mock_db_session
    finally:
        app.dependency_overrides.pop(get_db, None)


def make_transport(app):
    """ASGI transport with lifespan disabled so startup doesn't run DB bootstrap."""
    transport_kwargs = {"app": app}
    # httpx transport gained `lifespan=` relatively recently; keep compatibility with older versions
    # that will error if we pass an unexpected kwarg.
    if "lifespan" in inspect.signature(httpx.ASGITransport).parameters:
        transport_kwargs["lifespan"] = "off"
    return httpx.ASGITransport(**transport_kwargs)


@pytest_asyncio.fixture()
async def async_client(app):
    async with httpx.AsyncClient(transport=make_transport(app), base_url="http://test") as client:
        yield client
