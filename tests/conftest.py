"""
Test infrastructure for the data-access core.

Strategy
--------
- SQLite in-memory via aiosqlite eliminates the need for a running Postgres
  instance in CI, keeping the suite fast and self-contained.
- StaticPool forces every session to share the same in-memory database
  connection, which is required because SQLite in-memory databases are
  connection-scoped; a new connection would see an empty database.
- aiosqlite's own implicit BEGIN handling is switched off and BEGIN is
  emitted by SQLAlchemy instead, so SAVEPOINTs (tag resolution, best-effort
  follower hydration) and rollbacks behave as they do on PostgreSQL.
- A fresh engine and schema are built for each test and disposed after,
  giving each test a clean isolated state.
- Tests drive the repositories directly; seeding of rows the core never
  writes (follow and favorite edges) goes through a coordinator transaction.
"""
from datetime import datetime

import pytest_asyncio
from sqlalchemy import event, insert, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from conduit.database import Base
from conduit.instrumentation import install_query_counter
from conduit.models import Article, User, favorites, followings
from conduit.repositories.articles import ArticleRepository
from conduit.repositories.tags import TagRepository
from conduit.repositories.users import UserRepository
from conduit.schemas import ArticleCreate, UserCreate
from conduit.transaction import TransactionCoordinator

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# ---------------------------------------------------------------------------
# Fake credential verifier — hashing is outside the data-access layer
# ---------------------------------------------------------------------------

def fake_hash(password: str) -> str:
    return f"hashed:{password}"


def fake_verify(password: str, password_hash: str) -> bool:
    return fake_hash(password) == password_hash


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def engine():
    engine_test = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        hide_parameters=True,
    )

    @event.listens_for(engine_test.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine_test.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    install_query_counter(engine_test)

    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine_test
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine_test.dispose()


@pytest_asyncio.fixture
async def coordinator(engine) -> TransactionCoordinator:
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    return TransactionCoordinator(session_factory)


@pytest_asyncio.fixture
async def articles(coordinator) -> ArticleRepository:
    return ArticleRepository(coordinator)


@pytest_asyncio.fixture
async def users(coordinator) -> UserRepository:
    return UserRepository(coordinator, fake_verify)


@pytest_asyncio.fixture
async def tags(coordinator) -> TagRepository:
    return TagRepository(coordinator)


# ---------------------------------------------------------------------------
# Seeding helpers
# ---------------------------------------------------------------------------

async def create_user(users: UserRepository, username: str, password: str = "secret-pass") -> User:
    return await users.create(UserCreate(
        email=f"{username}@example.com",
        username=username,
        password_hash=fake_hash(password),
    ))


async def create_article(
    articles: ArticleRepository,
    author: User,
    title: str,
    tags: list[str] | None = None,
) -> Article:
    return await articles.create(ArticleCreate(
        title=title,
        body=f"Body of {title}",
        description=f"About {title}",
        author_id=author.id,
        tags=tags or [],
    ))


async def follow(coordinator: TransactionCoordinator, follower: User, followed: User) -> None:
    async with coordinator.transaction("seed.follow") as db:
        await db.execute(insert(followings).values(follower_id=follower.id, following_id=followed.id))


async def favorite(coordinator: TransactionCoordinator, user: User, article: Article) -> None:
    async with coordinator.transaction("seed.favorite") as db:
        await db.execute(insert(favorites).values(user_id=user.id, article_id=article.id))


async def set_created_at(coordinator: TransactionCoordinator, article: Article, when: datetime) -> None:
    async with coordinator.transaction("seed.created_at") as db:
        await db.execute(
            update(Article)
            .where(Article.id == article.id)
            .values(created_at=when)
            .execution_options(synchronize_session=False)
        )
