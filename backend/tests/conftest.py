import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from devfusion.database import Base
from devfusion.models import error_log_db, message_db, project_db, session_db  # noqa: F401
from devfusion.models.user import User
from devfusion.repositories.project_repository import ProjectRepository
from devfusion.services.auth_service import AuthService
from helpers import TEST_SECRET, FrozenClock


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def auth_service():
    return AuthService(secret_key=TEST_SECRET)


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
async def users(session_factory):
    async with session_factory() as session:
        session.add_all(
            [
                User(id="u1", email="a@x.com"),
                User(id="u2", email="b@x.com"),
                User(id="u3", email="c@x.com"),
                User(id="admin", email="admin@x.com", is_admin=True),
            ]
        )
        await session.commit()
    return ["u1", "u2", "u3", "admin"]


@pytest.fixture
async def project(session_factory, users):
    async with session_factory() as session:
        repo = ProjectRepository(session)
        created = await repo.create_project(name="demo", owner_id="u1", project_id="p1")
        return await repo.add_members(created.id, ["u2"])
