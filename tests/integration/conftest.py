"""Integration test fixtures with a real database.

Provides:
- A fresh database per test: file-backed SQLite in tmp_path (default) or
  PostgreSQL via testcontainers (--backend postgres)
- Engines built by the application's own factory, so SQLite runs with the
  same foreign-key and transaction hooks as production
- A session factory plus a ready session for service-level tests
- Real FastAPI app with get_db pointing at the test DB
- Seed helpers for transcripts, pain points and features
"""

import inspect

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from interview_analyzer.database import Base
from interview_analyzer.db_config import create_engine_for_url


# ---------------------------------------------------------------------------
# Engine: one database per test
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def postgres_url(request):
    """Start one PostgreSQL container for the session when --backend postgres."""
    if request.config.getoption("--backend") != "postgres":
        yield None
        return

    from testcontainers.postgres import PostgresContainer

    container = PostgresContainer("postgres:16-alpine", driver="psycopg")
    container.start()
    try:
        yield container.get_connection_url()
    finally:
        container.stop()


@pytest.fixture()
def database_url(tmp_path, postgres_url):
    if postgres_url is not None:
        return postgres_url
    return f"sqlite:///{tmp_path / 'interview_analyzer_test.db'}"


@pytest.fixture()
def integration_engine(database_url):
    """Engine with the head schema applied, dropped again after the test."""
    engine = create_engine_for_url(database_url)
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

@pytest.fixture()
def session_factory(integration_engine):
    return sessionmaker(bind=integration_engine, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def integration_db(session_factory):
    """Provide a real DB session; services commit through it like a request would."""
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture()
def count_rows(session_factory):
    """Count rows of an ORM model in a fresh session (sees every committed write)."""

    def _count(model, *criteria):
        with session_factory() as session:
            stmt = select(func.count()).select_from(model)
            if criteria:
                stmt = stmt.where(*criteria)
            return session.scalar(stmt)

    return _count


# ---------------------------------------------------------------------------
# FastAPI app with real DB wired in
# ---------------------------------------------------------------------------

@pytest.fixture()
def integration_app(session_factory):
    """FastAPI app with get_db overridden to open sessions on the test database."""
    from interview_analyzer.app import app
    from interview_analyzer.database import get_db

    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    yield app
    app.dependency_overrides.pop(get_db, None)


@pytest_asyncio.fixture()
async def client(integration_app):
    """Async HTTP client that talks to the real app + real DB (lifespan off)."""
    transport_kwargs = {"app": integration_app}
    if "lifespan" in inspect.signature(httpx.ASGITransport).parameters:
        transport_kwargs["lifespan"] = "off"

    transport = httpx.ASGITransport(**transport_kwargs)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


# ---------------------------------------------------------------------------
# Seed helpers
# ---------------------------------------------------------------------------

@pytest.fixture()
def seed_transcript(session_factory):
    """Factory fixture: commit a transcript with pain points mapped to feature names.

    ``mapped`` is a list of ``(feature_name, quote)`` pairs.
    """
    from interview_analyzer.database import FeatureMappingDB, PainPointDB, TranscriptDB
    from interview_analyzer.utils.feature_keys import normalize_feature_key

    def _create(user_id="default", summary="Interview", text="transcript text", mapped=()):
        with session_factory() as session:
            transcript = TranscriptDB(user_id=user_id, transcript_text=text, summary=summary)
            for feature_name, quote in mapped:
                pain_point = PainPointDB(pain_point=f"pain: {quote}", quote=quote)
                pain_point.mappings.append(
                    FeatureMappingDB(feature_name=feature_name, feature_key=normalize_feature_key(feature_name))
                )
                transcript.pain_points.append(pain_point)
            session.add(transcript)
            session.commit()
            return transcript.id

    return _create


@pytest.fixture()
def seed_feature(session_factory):
    """Factory fixture: commit a feature row and return its id."""
    from interview_analyzer.database import FeatureDB
    from interview_analyzer.utils.feature_keys import normalize_feature_key

    def _create(feature_name, user_id="default", status="active", is_suggestion=False, **kwargs):
        with session_factory() as session:
            feature = FeatureDB(
                user_id=user_id,
                feature_name=feature_name,
                feature_key=normalize_feature_key(feature_name),
                status=status,
                is_suggestion=is_suggestion,
                **kwargs,
            )
            session.add(feature)
            session.commit()
            return feature.id

    return _create
