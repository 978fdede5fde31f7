"""Storage layer: users, feeds, follows and posts kept in SQLite."""

from __future__ import annotations

import sqlite3
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterator, Optional, Sequence

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    name TEXT NOT NULL UNIQUE
);
CREATE TABLE IF NOT EXISTS feeds (
    id TEXT PRIMARY KEY,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    name TEXT NOT NULL,
    url TEXT NOT NULL UNIQUE,
    user_id TEXT NOT NULL REFERENCES users (id) ON DELETE CASCADE,
    last_fetched_at TEXT
);
CREATE TABLE IF NOT EXISTS feed_follows (
    id TEXT PRIMARY KEY,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    user_id TEXT NOT NULL REFERENCES users (id) ON DELETE CASCADE,
    feed_id TEXT NOT NULL REFERENCES feeds (id) ON DELETE CASCADE,
    UNIQUE (user_id, feed_id)
);
CREATE TABLE IF NOT EXISTS posts (
    id TEXT PRIMARY KEY,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    title TEXT NOT NULL,
    url TEXT NOT NULL UNIQUE,
    description TEXT NOT NULL,
    published_at TEXT NOT NULL,
    feed_id TEXT NOT NULL REFERENCES feeds (id) ON DELETE CASCADE
);
"""

_FEED_COLUMNS = (
    "feeds.id, feeds.created_at, feeds.updated_at, feeds.name, "
    "feeds.url, feeds.user_id, feeds.last_fetched_at"
)
_USER_COLUMNS = "id, created_at, updated_at, name"
_POST_COLUMNS = (
    "id, created_at, updated_at, title, url, description, published_at, feed_id"
)


class NoRowsError(LookupError):
    """A query that expects one row found none."""


class UniqueViolationError(sqlite3.IntegrityError):
    """An insert would duplicate a value that must be unique."""


@dataclass(frozen=True)
class User:
    id: uuid.UUID
    created_at: datetime
    updated_at: datetime
    name: str


@dataclass(frozen=True)
class Feed:
    id: uuid.UUID
    created_at: datetime
    updated_at: datetime
    name: str
    url: str
    user_id: uuid.UUID
    last_fetched_at: Optional[datetime] = None


@dataclass(frozen=True)
class FeedFollow:
    id: uuid.UUID
    created_at: datetime
    updated_at: datetime
    user_id: uuid.UUID
    feed_id: uuid.UUID


@dataclass(frozen=True)
class Post:
    id: uuid.UUID
    created_at: datetime
    updated_at: datetime
    title: str
    url: str
    description: str
    published_at: datetime
    feed_id: uuid.UUID


@dataclass(frozen=True)
class FeedFollowDetails:
    """A follow together with the names of its feed and user."""

    id: uuid.UUID
    created_at: datetime
    updated_at: datetime
    user_id: uuid.UUID
    feed_id: uuid.UUID
    feed_name: Optional[str]
    user_name: Optional[str]


@dataclass(frozen=True)
class FeedSummary:
    """A feed together with the name of the user who added it."""

    id: uuid.UUID
    created_at: datetime
    updated_at: datetime
    name: str
    url: str
    user_id: uuid.UUID
    last_fetched_at: Optional[datetime]
    user_name: Optional[str]


def _store_time(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.isoformat()


def _load_time(value: Optional[str]) -> Optional[datetime]:
    return None if value is None else datetime.fromisoformat(value)


def _load_uuid(value: str) -> uuid.UUID:
    return uuid.UUID(value)


def _user(row: Sequence[Any]) -> User:
    return User(
        id=_load_uuid(row[0]),
        created_at=_load_time(row[1]),
        updated_at=_load_time(row[2]),
        name=row[3],
    )


def _feed(row: Sequence[Any]) -> Feed:
    return Feed(
        id=_load_uuid(row[0]),
        created_at=_load_time(row[1]),
        updated_at=_load_time(row[2]),
        name=row[3],
        url=row[4],
        user_id=_load_uuid(row[5]),
        last_fetched_at=_load_time(row[6]),
    )


def _post(row: Sequence[Any]) -> Post:
    return Post(
        id=_load_uuid(row[0]),
        created_at=_load_time(row[1]),
        updated_at=_load_time(row[2]),
        title=row[3],
        url=row[4],
        description=row[5],
        published_at=_load_time(row[6]),
        feed_id=_load_uuid(row[7]),
    )


def _follow_details(row: Sequence[Any]) -> FeedFollowDetails:
    return FeedFollowDetails(
        id=_load_uuid(row[0]),
        created_at=_load_time(row[1]),
        updated_at=_load_time(row[2]),
        user_id=_load_uuid(row[3]),
        feed_id=_load_uuid(row[4]),
        feed_name=row[5],
        user_name=row[6],
    )


def connect(url: str) -> sqlite3.Connection:
    """Open a database from a ``sqlite://`` URL or a plain file path."""
    if url.startswith("sqlite://"):
        rest = url[len("sqlite://"):]
        if rest in ("", "/", "/:memory:"):
            path = ":memory:"
        elif rest.startswith("/"):
            path = rest[1:]
        else:
            raise ValueError(f"invalid database url: {url}")
    elif "://" in url:
        raise ValueError(f"unsupported database url: {url}")
    else:
        path = url
    return sqlite3.connect(path)


class Queries:
    """The queries the application runs against its database."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn
        self._depth = 0
        self.conn.execute("PRAGMA foreign_keys = ON")

    @contextmanager
    def transaction(self) -> Iterator["Queries"]:
        """Run the enclosed queries as one unit, rolled back on error."""
        self._depth += 1
        try:
            yield self
        except BaseException:
            self._depth -= 1
            if self._depth == 0:
                self.conn.rollback()
            raise
        self._depth -= 1
        if self._depth == 0:
            self.conn.commit()

    def _write(self, sql: str, params: Sequence[Any] = ()) -> None:
        try:
            self.conn.execute(sql, params)
        except sqlite3.IntegrityError as exc:
            if "UNIQUE constraint failed" in str(exc):
                raise UniqueViolationError(str(exc)) from exc
            raise
        if self._depth == 0:
            self.conn.commit()

    def _one(self, sql: str, params: Sequence[Any] = ()) -> Sequence[Any]:
        row = self.conn.execute(sql, params).fetchone()
        if row is None:
            raise NoRowsError("no rows in result set")
        return row

    def create_schema(self) -> None:
        """Create the tables if they do not exist yet."""
        self.conn.executescript(_SCHEMA)
        self.conn.commit()

    def create_user(self, user_id, name, created_at, updated_at) -> User:
        self._write(
            "INSERT INTO users (id, created_at, updated_at, name) VALUES (?, ?, ?, ?)",
            (str(user_id), _store_time(created_at), _store_time(updated_at), name),
        )
        return User(id=user_id, created_at=created_at, updated_at=updated_at, name=name)

    def create_feed(self, feed_id, name, url, user_id, created_at, updated_at) -> Feed:
        self._write(
            "INSERT INTO feeds (id, created_at, updated_at, name, url, user_id) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                str(feed_id),
                _store_time(created_at),
                _store_time(updated_at),
                name,
                url,
                str(user_id),
            ),
        )
        return Feed(
            id=feed_id,
            created_at=created_at,
            updated_at=updated_at,
            name=name,
            url=url,
            user_id=user_id,
            last_fetched_at=None,
        )

    def create_feed_follow(
        self, follow_id, user_id, feed_id, created_at, updated_at
    ) -> FeedFollowDetails:
        self._write(
            "INSERT INTO feed_follows (id, created_at, updated_at, user_id, feed_id) "
            "VALUES (?, ?, ?, ?, ?)",
            (
                str(follow_id),
                _store_time(created_at),
                _store_time(updated_at),
                str(user_id),
                str(feed_id),
            ),
        )
        row = self._one(
            "SELECT feed_follows.id, feed_follows.created_at, feed_follows.updated_at, "
            "feed_follows.user_id, feed_follows.feed_id, feeds.name, users.name "
            "FROM feed_follows "
            "INNER JOIN feeds ON feed_follows.feed_id = feeds.id "
            "INNER JOIN users ON feed_follows.user_id = users.id "
            "WHERE feed_follows.id = ?",
            (str(follow_id),),
        )
        return _follow_details(row)

    def create_post(
        self,
        post_id,
        feed_id,
        title,
        url,
        description,
        published_at,
        created_at,
        updated_at,
    ) -> Post:
        self._write(
            "INSERT INTO posts (id, created_at, updated_at, title, url, description, "
            "published_at, feed_id) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                str(post_id),
                _store_time(created_at),
                _store_time(updated_at),
                title,
                url,
                description,
                _store_time(published_at),
                str(feed_id),
            ),
        )
        return Post(
            id=post_id,
            created_at=created_at,
            updated_at=updated_at,
            title=title,
            url=url,
            description=description,
            published_at=published_at,
            feed_id=feed_id,
        )

    def delete_all_users(self) -> None:
        self._write("DELETE FROM users")

    def delete_feed_follow(self, user_id, feed_id) -> None:
        self._write(
            "DELETE FROM feed_follows WHERE user_id = ? AND feed_id = ?",
            (str(user_id), str(feed_id)),
        )

    def get_all_feeds(self) -> list[FeedSummary]:
        rows = self.conn.execute(
            f"SELECT {_FEED_COLUMNS}, users.name FROM feeds "
            "LEFT JOIN users ON feeds.user_id = users.id"
        ).fetchall()
        summaries = []
        for row in rows:
            feed = _feed(row)
            summaries.append(
                FeedSummary(
                    id=feed.id,
                    created_at=feed.created_at,
                    updated_at=feed.updated_at,
                    name=feed.name,
                    url=feed.url,
                    user_id=feed.user_id,
                    last_fetched_at=feed.last_fetched_at,
                    user_name=row[7],
                )
            )
        return summaries

    def get_all_users(self) -> list[User]:
        rows = self.conn.execute(f"SELECT {_USER_COLUMNS} FROM users").fetchall()
        return [_user(row) for row in rows]

    def get_feed_by_url(self, url) -> Feed:
        return _feed(
            self._one(f"SELECT {_FEED_COLUMNS} FROM feeds WHERE feeds.url = ?", (url,))
        )

    def get_feed_follows_for_user(self, user_id) -> list[FeedFollowDetails]:
        rows = self.conn.execute(
            "SELECT feed_follows.id, feed_follows.created_at, feed_follows.updated_at, "
            "feed_follows.user_id, feed_follows.feed_id, feeds.name, users.name "
            "FROM feed_follows "
            "LEFT JOIN users ON feed_follows.user_id = users.id "
            "LEFT JOIN feeds ON feed_follows.feed_id = feeds.id "
            "WHERE feed_follows.user_id = ?",
            (str(user_id),),
        ).fetchall()
        return [_follow_details(row) for row in rows]

    def get_next_feed_to_fetch(self) -> Feed:
        """Return the feed never fetched, or else the one fetched longest ago."""
        return _feed(
            self._one(
                f"SELECT {_FEED_COLUMNS} FROM feeds "
                "ORDER BY last_fetched_at IS NULL DESC, last_fetched_at ASC LIMIT 1"
            )
        )

    def get_feed_posts_for_user(self, user_id, limit) -> list[Post]:
        """Return the newest posts of the feeds the user added, at most ``limit``."""
        if limit < 0:
            raise ValueError("LIMIT must not be negative")
        rows = self.conn.execute(
            f"SELECT {_POST_COLUMNS} FROM posts "
            "WHERE feed_id IN (SELECT id FROM feeds WHERE user_id = ?) "
            "ORDER BY published_at DESC LIMIT ?",
            (str(user_id), int(limit)),
        ).fetchall()
        return [_post(row) for row in rows]

    def get_user_by_name(self, name) -> User:
        return _user(
            self._one(f"SELECT {_USER_COLUMNS} FROM users WHERE name = ?", (name,))
        )

    def mark_feed_fetched(self, feed_id, last_fetched_at, updated_at) -> None:
        self._write(
            "UPDATE feeds SET last_fetched_at = ?, updated_at = ? WHERE id = ?",
            (_store_time(last_fetched_at), _store_time(updated_at), str(feed_id)),
        )