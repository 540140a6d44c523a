"""
Shared fixtures for gator tests.

Provides common test fixtures for use across all test modules.
"""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio

from gator.commands import CommandContext
from gator.config import AppConfig, Session
from gator.fetcher import FeedFetcher
from gator.storage import Storage


# Path to test fixtures directory
FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture
def fixtures_dir() -> Path:
    """Return path to fixtures directory."""
    return FIXTURES_DIR


@pytest.fixture
def sample_rss_path(fixtures_dir: Path) -> Path:
    """Return path to sample RSS feed file."""
    return fixtures_dir / "sample_rss.xml"


@pytest.fixture
def sample_config_path(fixtures_dir: Path) -> Path:
    """Return path to sample config file."""
    return fixtures_dir / "sample_config.yaml"


@pytest.fixture
def sample_rss_content(sample_rss_path: Path) -> str:
    """Return contents of sample RSS feed."""
    return sample_rss_path.read_text()


@pytest.fixture
def minimal_rss() -> str:
    """Return a valid RSS document without items."""
    return """<?xml version="1.0"?>
    <rss version="2.0">
        <channel>
            <title>Minimal</title>
            <link>https://example.com/</link>
            <description></description>
        </channel>
    </rss>
    """


@pytest_asyncio.fixture
async def in_memory_storage() -> AsyncGenerator[Storage, None]:
    """
    Create an in-memory SQLite storage for testing.

    Yields
    ------
    Storage
        An initialized in-memory storage instance.
    """
    storage = Storage(":memory:")
    await storage.initialize()
    yield storage
    await storage.close()


@pytest.fixture
def session(tmp_path: Path) -> Session:
    """Create a session backed by a config file in a temp directory."""
    return Session(config=AppConfig(), config_path=tmp_path / "gatorconfig.yaml")


@pytest_asyncio.fixture
async def ctx(
    session: Session, in_memory_storage: Storage
) -> AsyncGenerator[CommandContext, None]:
    """
    Create a command context over in-memory storage.

    Yields
    ------
    CommandContext
        Context with no logged-in user.
    """
    fetcher = FeedFetcher()
    yield CommandContext(session=session, storage=in_memory_storage, fetcher=fetcher)
    await fetcher.close()
