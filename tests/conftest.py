from __future__ import annotations

from collections.abc import AsyncIterator
from datetime import UTC, datetime

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool
from skillmatrix.api.deps import get_db_session
from skillmatrix.api.main import app
from skillmatrix.infrastructure.db.base import Base
from skillmatrix.infrastructure.db.models import Skill, UserModel, UserRole
from skillmatrix.infrastructure.repositories import UnitOfWork

from tests.utils import (
    EMP_1,
    EMP_2,
    EMP_3,
    HR_1,
    HR_2,
    LEAD_1,
    LEAD_2,
    SOLO,
    FixedClock,
)

USERS = [
    {"id": HR_1, "name": "Hana HR", "role": UserRole.HR, "team_id": "people"},
    {"id": HR_2, "name": "Hugo HR", "role": UserRole.HR, "team_id": "people"},
    {"id": LEAD_1, "name": "Lina Lead", "role": UserRole.LEAD, "team_id": "platform"},
    {"id": LEAD_2, "name": "Luis Lead", "role": UserRole.LEAD, "team_id": "data"},
    {
        "id": EMP_1,
        "name": "Ema Employee",
        "role": UserRole.EMPLOYEE,
        "lead_id": LEAD_1,
        "hr_id": HR_1,
        "team_id": "platform",
    },
    {
        "id": EMP_2,
        "name": "Eli Employee",
        "role": UserRole.EMPLOYEE,
        "lead_id": LEAD_1,
        "hr_id": HR_1,
        "team_id": "platform",
    },
    {
        "id": EMP_3,
        "name": "Eva Employee",
        "role": UserRole.EMPLOYEE,
        "lead_id": LEAD_2,
        "hr_id": HR_1,
        "team_id": "data",
    },
    {"id": SOLO, "name": "Sol Solo", "role": UserRole.EMPLOYEE, "hr_id": HR_1, "team_id": "data"},
]

SKILLS = [
    {"id": 1, "name": "Python"},
    {"id": 2, "name": "SQL"},
    {"id": 3, "name": "Communication"},
]


@pytest.fixture()
async def engine() -> AsyncIterator[AsyncEngine]:
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite transaction handling breaks SAVEPOINT; take over BEGIN ourselves
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_implicit_begin(dbapi_connection, connection_record):  # noqa: ANN001
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):  # noqa: ANN001
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
async def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    factory = async_sessionmaker(engine, expire_on_commit=False)
    async with factory() as session:
        await seed_directory(session)
    return factory


async def seed_directory(session: AsyncSession) -> None:
    # leads first so lead_id foreign keys resolve
    for user in sorted(USERS, key=lambda row: "lead_id" in row):
        session.add(UserModel(email=f"{user['id']}@example.com", **user))
    for skill in SKILLS:
        session.add(Skill(**skill))
    await session.commit()


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock(datetime(2026, 3, 2, 10, 0, tzinfo=UTC))


@pytest.fixture()
async def session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest.fixture()
def uow(session: AsyncSession) -> UnitOfWork:
    return UnitOfWork(session)


@pytest.fixture()
async def async_client(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncClient]:
    """HTTP client bound to the app with the in-memory database."""

    async def override_db_session() -> AsyncIterator[AsyncSession]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_db_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.pop(get_db_session, None)
