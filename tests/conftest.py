"""Shared test fixtures for confsync."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from confsync.config import Settings
from confsync.filesystem.file_store import FileStore
from confsync.main import build_engine_components, create_app
from confsync.models.base import Base
from confsync.services.materializer import Materializer
from confsync.services.reconcile_service import Reconciler
from confsync.services.sweep_service import Sweeper

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator
    from pathlib import Path

TEST_ADMIN_TOKEN = "test-admin-token-with-at-least-32-characters"


@asynccontextmanager
async def create_test_client(settings: Settings) -> AsyncGenerator[AsyncClient]:
    """Create an HTTP test client with a fully initialized app.

    Manually performs the work of the application lifespan (DB schema, engine
    components) because ASGITransport does not trigger it.
    """
    from confsync.database import create_engine as create_db_engine
    from confsync.database import create_tables

    app = create_app(settings)
    settings.validate_runtime_security()

    engine, session_factory = create_db_engine(settings)
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.settings = settings
    await create_tables(engine)

    file_store, materializer, reconciler = build_engine_components(settings)
    file_store.ensure_base()
    app.state.file_store = file_store
    app.state.materializer = materializer
    app.state.reconciler = reconciler

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    await engine.dispose()


@pytest.fixture
def config_dir(tmp_path: Path) -> Path:
    """Managed configuration directory."""
    path = tmp_path / "configs"
    path.mkdir()
    return path


@pytest.fixture
def backup_dir(tmp_path: Path) -> Path:
    """Backup directory outside the managed tree."""
    return tmp_path / "backups"


@pytest.fixture
def test_settings(config_dir: Path, backup_dir: Path, tmp_path: Path) -> Settings:
    """Create test settings with temporary paths."""
    db_path = tmp_path / "test.db"
    return Settings(
        _env_file=None,
        debug=True,
        database_url=f"sqlite+aiosqlite:///{db_path}",
        config_base_path=config_dir,
        backup_path=backup_dir,
        admin_token=TEST_ADMIN_TOKEN,
        reconcile_on_startup=False,
    )


@pytest.fixture
async def db_engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine]:
    """Create a test database engine with the schema in place."""
    engine = create_async_engine(
        test_settings.database_url,
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(
    db_engine: AsyncEngine,
) -> AsyncGenerator[AsyncSession]:
    """Create a test database session."""
    session_factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with session_factory() as session:
        yield session


@pytest.fixture
def file_store(config_dir: Path, backup_dir: Path) -> FileStore:
    """File store over the temporary managed directory."""
    return FileStore(base_path=config_dir, backup_path=backup_dir)


@pytest.fixture
def materializer(file_store: FileStore) -> Materializer:
    return Materializer(file_store)


@pytest.fixture
def sweeper(file_store: FileStore) -> Sweeper:
    return Sweeper(file_store)


@pytest.fixture
def reconciler(materializer: Materializer, sweeper: Sweeper) -> Reconciler:
    return Reconciler(materializer, sweeper)
