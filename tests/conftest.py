import asyncio
import os

import pytest
from sqlalchemy.pool import NullPool

# Settings are read at import time; point them at throwaway values before campusdesk loads
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./campusdesk-unused.db"
os.environ["JWT_SECRET_KEY"] = "campusdesk-test-secret-key-0123456789abcdef"
os.environ["ENVIRONMENT"] = "test"
os.environ["IDENTITY_PROVIDER_URL"] = ""
os.environ["IDENTITY_SERVICE_KEY"] = ""

from campusdesk.core.database import build_engine, build_session_factory, init_models  # noqa: E402

from helpers import seed_school  # noqa: E402


@pytest.fixture()
def database(tmp_path):
    """
    Session factory bound to a fresh SQLite file with every table created.
    NullPool keeps connections from outliving the event loop of each asyncio.run call.
    """
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'campusdesk.db'}", poolclass=NullPool, echo=False)
    asyncio.run(init_models(engine))

    yield build_session_factory(engine)

    asyncio.run(engine.dispose())


@pytest.fixture()
def school(database):
    """One class with sections A and B for the current year, plus section A for next year."""
    return asyncio.run(seed_school(database))


@pytest.fixture()
def broken_session_factory(tmp_path):
    """Sessions whose store cannot be opened, for recalculation failure paths."""
    engine = build_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'campusdesk.db'}", poolclass=NullPool, echo=False
    )
    yield build_session_factory(engine)
    asyncio.run(engine.dispose())
