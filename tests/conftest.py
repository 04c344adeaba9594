# tests/conftest.py
import pytest

from flatwatch.config import load_settings
from flatwatch.db import build_engine, build_session_maker, init_models
from flatwatch.models import Project

from fakes import FakeMailer


@pytest.fixture
def settings(tmp_path):
    return load_settings(
        ENV="test",
        FLATWATCH_DB_URL=f"sqlite+aiosqlite:///{tmp_path / 'flatwatch.db'}",
        SOURCE_KIND="stub_json",
        STUB_FIXTURES_DIR=str(tmp_path / "fixtures"),
        PIK_API_BASE="https://api.test",
        PIK_SITE_URL="https://www.test",
        API_KEY=None,
        HTTP_REQUEST_DELAY_S=0,
        HTTP_MAX_RETRIES=1,
        HTTP_BACKOFF_BASE_S=0,
        EMAIL_ENABLED=True,
        EMAIL_DEFAULT_TO="owner@example.com",
        SMTP_HOST=None,
    )


@pytest.fixture
async def engine(settings):
    """
    Fresh file-backed SQLite DB per test. A cycle opens several sessions
    (lock, per-project, dispatch), each on its own connection.
    """
    engine = build_engine(settings)
    await init_models(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def async_session_maker(engine):
    return build_session_maker(engine)


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
async def tracked_project(async_session_maker):
    async with async_session_maker() as session:
        p = Project(external_id=101, name="Green Park", slug="greenpark", is_tracked=True)
        session.add(p)
        await session.commit()
        await session.refresh(p)
        return p
