"""
SQLite storage for users, feeds and feed follows.

Provides async database operations that enforce the uniqueness and
ownership rules of the schema and report violations as typed errors.
"""

import logging
import sqlite3
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from gator.errors import (
    AlreadyFollowingError,
    DuplicateError,
    NotFoundError,
    UniqueViolation,
)
from gator.models import (
    Feed,
    FeedFollowDetails,
    FeedWithOwner,
    FollowedFeed,
    User,
)

logger = logging.getLogger(__name__)

TABLES = ("users", "feeds", "feed_follows")

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        name TEXT NOT NULL UNIQUE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS feeds (
        id TEXT PRIMARY KEY,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        name TEXT NOT NULL,
        url TEXT NOT NULL UNIQUE,
        user_id TEXT NOT NULL REFERENCES users (id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS feed_follows (
        id TEXT PRIMARY KEY,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        user_id TEXT NOT NULL REFERENCES users (id) ON DELETE CASCADE,
        feed_id TEXT NOT NULL REFERENCES feeds (id) ON DELETE CASCADE
    )
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS user_feed_unique_idx
    ON feed_follows (user_id, feed_id)
    """,
)

_UPDATED_AT_TRIGGER = """
    CREATE TRIGGER IF NOT EXISTS {table}_updated_at
    AFTER UPDATE ON {table}
    FOR EACH ROW WHEN NEW.updated_at = OLD.updated_at
    BEGIN
        UPDATE {table}
        SET updated_at = strftime('%Y-%m-%dT%H:%M:%f+00:00', 'now')
        WHERE id = NEW.id;
    END
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return str(uuid.uuid4())


def _error_code(error: sqlite3.IntegrityError) -> int | None:
    return getattr(error, "sqlite_errorcode", None)


def _is_unique_violation(error: sqlite3.IntegrityError) -> bool:
    return _error_code(error) == sqlite3.SQLITE_CONSTRAINT_UNIQUE


def _is_foreign_key_violation(error: sqlite3.IntegrityError) -> bool:
    return _error_code(error) == sqlite3.SQLITE_CONSTRAINT_FOREIGNKEY


class Storage:
    """
    Async SQLite storage for the aggregator's relational state.

    Single operations commit immediately. Operations issued inside
    ``transaction()`` commit or roll back together.
    """

    def __init__(self, database_path: str | Path):
        """
        Initialize storage with database path.

        Parameters
        ----------
        database_path : str | Path
            Path to the SQLite database file, or ``:memory:``.
        """
        self.database_path = Path(database_path)
        self._connection: aiosqlite.Connection | None = None
        self._in_transaction = False

    async def initialize(self) -> None:
        """
        Initialize the database connection and create tables.

        Creates the database file and parent directories if they don't exist.
        """
        if str(self.database_path) != ":memory:":
            self.database_path.parent.mkdir(parents=True, exist_ok=True)

        logger.info("Initializing database at %s", self.database_path)

        self._connection = await aiosqlite.connect(self.database_path)
        self._connection.row_factory = aiosqlite.Row
        await self._connection.execute("PRAGMA foreign_keys = ON")
        await self._create_tables()

    def _conn(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RuntimeError("Database not initialized")
        return self._connection

    async def _create_tables(self) -> None:
        """Create database tables, indexes and triggers if they don't exist."""
        connection = self._conn()

        for statement in _SCHEMA:
            await connection.execute(statement)
        for table in TABLES:
            await connection.execute(_UPDATED_AT_TRIGGER.format(table=table))

        await connection.commit()
        logger.debug("Database tables created/verified")

    async def _commit(self) -> None:
        if not self._in_transaction:
            await self._conn().commit()

    async def _rollback(self) -> None:
        if not self._in_transaction:
            await self._conn().rollback()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["Storage"]:
        """
        Group several operations into one atomic unit.

        Nested calls join the outermost transaction.

        Yields
        ------
        Storage
            This storage instance.
        """
        connection = self._conn()
        if self._in_transaction:
            yield self
            return

        self._in_transaction = True
        try:
            yield self
        except BaseException:
            await connection.rollback()
            logger.debug("Transaction rolled back")
            raise
        else:
            await connection.commit()
        finally:
            self._in_transaction = False

    # Users

    async def create_user(self, name: str) -> User:
        """
        Register a new user.

        Raises
        ------
        DuplicateError
            If a user with this name already exists.
        """
        now = _now()
        user = User(id=_new_id(), name=name, created_at=now, updated_at=now)

        try:
            await self._conn().execute(
                "INSERT INTO users (id, created_at, updated_at, name) VALUES (?, ?, ?, ?)",
                (user.id, user.created_at, user.updated_at, user.name),
            )
        except sqlite3.IntegrityError as e:
            await self._rollback()
            if _is_unique_violation(e):
                raise DuplicateError(name) from e
            raise
        await self._commit()

        logger.debug("Created user %s (%s)", user.name, user.id)
        return user

    async def get_user(self, name: str) -> User | None:
        """Look up a user by name."""
        cursor = await self._conn().execute(
            "SELECT id, name, created_at, updated_at FROM users WHERE name = ?",
            (name,),
        )
        row = await cursor.fetchone()
        return User(**dict(row)) if row else None

    async def require_user(self, name: str) -> User:
        """
        Look up a user that must exist.

        Raises
        ------
        NotFoundError
            If no user has this name.
        """
        user = await self.get_user(name)
        if user is None:
            raise NotFoundError("user", name)
        return user

    async def list_users(self) -> list[User]:
        cursor = await self._conn().execute(
            "SELECT id, name, created_at, updated_at FROM users ORDER BY name"
        )
        return [User(**dict(row)) for row in await cursor.fetchall()]

    async def delete_all_users(self) -> int:
        """
        Delete every user; feeds and follows go with them.

        Returns
        -------
        int
            Number of users removed.
        """
        cursor = await self._conn().execute("DELETE FROM users")
        await self._commit()

        deleted = cursor.rowcount
        logger.info("Deleted %d user(s)", deleted)
        return deleted

    # Feeds

    async def create_feed(self, name: str, url: str, user_id: str) -> Feed:
        """
        Add a feed owned by ``user_id``.

        Raises
        ------
        UniqueViolation
            If another feed already has this URL.
        NotFoundError
            If the owner does not exist.
        """
        now = _now()
        feed = Feed(
            id=_new_id(),
            name=name,
            url=url,
            user_id=user_id,
            created_at=now,
            updated_at=now,
        )

        try:
            await self._conn().execute(
                """
                INSERT INTO feeds (id, created_at, updated_at, name, url, user_id)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (feed.id, feed.created_at, feed.updated_at, feed.name, feed.url, feed.user_id),
            )
        except sqlite3.IntegrityError as e:
            await self._rollback()
            if _is_unique_violation(e):
                raise UniqueViolation(
                    "feed", ("url",), f"A feed with URL {url} already exists"
                ) from e
            if _is_foreign_key_violation(e):
                raise NotFoundError("user", user_id) from e
            raise
        await self._commit()

        logger.debug("Created feed %s (%s)", feed.url, feed.id)
        return feed

    async def get_feed_by_url(self, url: str) -> Feed | None:
        cursor = await self._conn().execute(
            """
            SELECT id, name, url, user_id, created_at, updated_at
            FROM feeds WHERE url = ?
            """,
            (url,),
        )
        row = await cursor.fetchone()
        return Feed(**dict(row)) if row else None

    async def list_feeds_with_owners(self) -> list[FeedWithOwner]:
        """List every feed with its owner's name, None if the owner is gone."""
        cursor = await self._conn().execute(
            """
            SELECT feeds.name AS feed_name, feeds.url AS feed_url,
                   users.name AS owner_name
            FROM feeds
            LEFT JOIN users ON feeds.user_id = users.id
            ORDER BY feeds.created_at, feeds.name
            """
        )
        return [FeedWithOwner(**dict(row)) for row in await cursor.fetchall()]

    # Follows

    async def _get_feed_follow(self, follow_id: str) -> FeedFollowDetails:
        cursor = await self._conn().execute(
            """
            SELECT feed_follows.id AS id,
                   feed_follows.created_at AS created_at,
                   feed_follows.updated_at AS updated_at,
                   users.id AS user_id, users.name AS user_name,
                   feeds.id AS feed_id, feeds.name AS feed_name,
                   feeds.url AS feed_url
            FROM feed_follows
            JOIN users ON feed_follows.user_id = users.id
            JOIN feeds ON feed_follows.feed_id = feeds.id
            WHERE feed_follows.id = ?
            """,
            (follow_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            raise NotFoundError("feed follow", follow_id)
        return FeedFollowDetails(**dict(row))

    async def _missing_parent(self, user_id: str, feed_id: str) -> NotFoundError:
        cursor = await self._conn().execute("SELECT 1 FROM users WHERE id = ?", (user_id,))
        if await cursor.fetchone() is None:
            return NotFoundError("user", user_id)
        return NotFoundError("feed", feed_id)

    async def create_feed_follow(self, user_id: str, feed_id: str) -> FeedFollowDetails:
        """
        Record that a user follows a feed.

        Returns
        -------
        FeedFollowDetails
            The new follow with the user's name and the feed's name and URL.

        Raises
        ------
        AlreadyFollowingError
            If the user already follows the feed.
        NotFoundError
            If the user or the feed does not exist.
        """
        now = _now()
        follow_id = _new_id()

        try:
            await self._conn().execute(
                """
                INSERT INTO feed_follows (id, created_at, updated_at, user_id, feed_id)
                VALUES (?, ?, ?, ?, ?)
                """,
                (follow_id, now, now, user_id, feed_id),
            )
        except sqlite3.IntegrityError as e:
            await self._rollback()
            if _is_unique_violation(e):
                raise AlreadyFollowingError(user_id, feed_id) from e
            if _is_foreign_key_violation(e):
                raise await self._missing_parent(user_id, feed_id) from e
            raise

        follow = await self._get_feed_follow(follow_id)
        await self._commit()

        logger.debug("User %s now follows %s", follow.user_name, follow.feed_url)
        return follow

    async def list_follows_for_user(self, user_id: str) -> list[FollowedFeed]:
        """List the feeds a user follows; empty when none."""
        cursor = await self._conn().execute(
            """
            SELECT feeds.name AS feed_name, feeds.url AS feed_url
            FROM feed_follows
            JOIN feeds ON feed_follows.feed_id = feeds.id
            WHERE feed_follows.user_id = ?
            ORDER BY feed_follows.created_at, feeds.name
            """,
            (user_id,),
        )
        return [FollowedFeed(**dict(row)) for row in await cursor.fetchall()]

    async def delete_feed_follow(self, user_id: str, feed_id: str) -> bool:
        """
        Remove a follow.

        Returns
        -------
        bool
            True if a follow was removed.
        """
        cursor = await self._conn().execute(
            "DELETE FROM feed_follows WHERE user_id = ? AND feed_id = ?",
            (user_id, feed_id),
        )
        await self._commit()
        return cursor.rowcount > 0

    async def count(self, table: str) -> int:
        """Count the rows of one of the storage tables."""
        if table not in TABLES:
            raise ValueError(f"Unknown table: {table}")

        cursor = await self._conn().execute(f"SELECT COUNT(*) FROM {table}")
        result = await cursor.fetchone()
        return result[0] if result else 0

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None
            logger.debug("Database connection closed")

    async def __aenter__(self) -> "Storage":
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()
