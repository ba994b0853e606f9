from pathlib import Path

import pytest
import pytest_asyncio

from production_sync.database import SqliteDocumentStore
from production_sync.exceptions import StoreError
from production_sync.settings import Settings
from production_sync.store import MemoryDocumentStore


class FailingStore(MemoryDocumentStore):
    """Memory store whose reads or commits can be made to fail."""

    def __init__(self, *args, fail_reads: bool = False, fail_commits: bool = False, **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_reads = fail_reads
        self.fail_commits = fail_commits

    async def get_all(self, collection, filters=None):
        if self.fail_reads:
            raise StoreError("store unavailable")
        return await super().get_all(collection, filters)

    async def commit_batch(self, writes):
        if self.fail_commits:
            raise StoreError("batch rejected")
        return await super().commit_batch(writes)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        store_backend="memory",
        db_path=tmp_path / "production.db",
        log_file=tmp_path / "logs" / "production_sync.log",
    )


@pytest.fixture
def store() -> MemoryDocumentStore:
    return MemoryDocumentStore()


@pytest_asyncio.fixture
async def sqlite_store(tmp_path: Path):
    """Provides an initialized file-based document store for each test."""
    store_instance = SqliteDocumentStore(tmp_path / "test.db")
    await store_instance.initialize()
    yield store_instance
    await store_instance.close()
