"""
SQLite-backed repository.

Each operation opens its own connection so the repository can be shared by
the scheduler's worker threads. Unique indexes on ``feeds.url``,
``articles.fingerprint`` and ``articles(feed_id, guid)`` provide the
single-writer-per-row guarantees the core relies on.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
import sqlite3
from typing import Iterator

from ..core.errors import NotFound, UniqueConstraintViolation
from ..core.types import (
    Article,
    CandidateEntry,
    CreditCycle,
    Feed,
    ReadMarker,
    Subscription,
    utcnow,
)
from .base import Repository, SubscriptionFilter


_SCHEMA = """
CREATE TABLE IF NOT EXISTS feeds (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    url TEXT NOT NULL UNIQUE,
    title TEXT,
    site_url TEXT,
    last_fetched_at TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS articles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    feed_id INTEGER NOT NULL REFERENCES feeds(id),
    guid TEXT NOT NULL,
    title TEXT NOT NULL,
    url TEXT NOT NULL,
    published_at TEXT NOT NULL,
    author TEXT,
    summary TEXT NOT NULL DEFAULT '',
    content TEXT NOT NULL DEFAULT '',
    fingerprint TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_articles_fingerprint ON articles(fingerprint);
CREATE UNIQUE INDEX IF NOT EXISTS idx_articles_feed_guid ON articles(feed_id, guid);

CREATE TABLE IF NOT EXISTS subscriptions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    feed_id INTEGER NOT NULL REFERENCES feeds(id),
    user_id TEXT,
    team_id INTEGER,
    category TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_subscriptions_feed ON subscriptions(feed_id);

CREATE TABLE IF NOT EXISTS credit_cycles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    subscriber_id TEXT NOT NULL,
    cycle_start TEXT NOT NULL,
    cycle_end TEXT NOT NULL,
    used INTEGER NOT NULL DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_credit_cycles_subscriber ON credit_cycles(subscriber_id);

CREATE TABLE IF NOT EXISTS read_markers (
    article_id INTEGER NOT NULL,
    subscriber_id TEXT NOT NULL,
    read_at TEXT NOT NULL,
    PRIMARY KEY (article_id, subscriber_id)
);
"""

# Fixed-width UTC timestamps so TEXT comparison matches chronological order.
_TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

_ACTIVE_CYCLE_SQL = (
    "SELECT id, subscriber_id, cycle_start, cycle_end, used FROM credit_cycles "
    "WHERE subscriber_id = ? AND cycle_start <= ? AND cycle_end > ? "
    "ORDER BY cycle_start DESC, id DESC LIMIT 1"
)


def _to_db(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(_TS_FORMAT)


def _from_db(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.strptime(value, _TS_FORMAT).replace(tzinfo=timezone.utc)


class SqliteRepository(Repository):
    """Repository stored in a single SQLite database file.

    Args:
        path: Database file path. The parent directory is created if needed.
        timeout: Seconds to wait on a locked database before failing
    """

    def __init__(self, path: str | Path, timeout: float = 30.0):
        self.path = Path(path)
        self.timeout = timeout
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.executescript(_SCHEMA)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.path, timeout=self.timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Run statements inside BEGIN IMMEDIATE so read-then-write is atomic."""
        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    # Feeds

    def get_feed(self, feed_id: int) -> Feed | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM feeds WHERE id = ?", (feed_id,)).fetchone()
        return _row_to_feed(row) if row else None

    def find_feed_by_url(self, url: str) -> Feed | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM feeds WHERE url = ?", (url,)).fetchone()
        return _row_to_feed(row) if row else None

    def create_feed(
        self,
        url: str,
        title: str | None = None,
        site_url: str | None = None,
        last_fetched_at: datetime | None = None,
    ) -> Feed:
        created_at = utcnow()
        try:
            with self._connect() as conn:
                cur = conn.execute(
                    "INSERT INTO feeds (url, title, site_url, last_fetched_at, created_at) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (url, title, site_url, _to_db(last_fetched_at), _to_db(created_at)),
                )
                feed_id = cur.lastrowid
        except sqlite3.IntegrityError as exc:
            raise UniqueConstraintViolation("feed_url", str(exc)) from exc
        return Feed(
            id=feed_id,
            url=url,
            title=title,
            site_url=site_url,
            last_fetched_at=last_fetched_at,
            created_at=created_at,
        )

    def update_feed_metadata(
        self,
        feed_id: int,
        title: str | None,
        site_url: str | None,
        last_fetched_at: datetime,
    ) -> None:
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE feeds SET title = ?, site_url = ?, last_fetched_at = ? WHERE id = ?",
                (title, site_url, _to_db(last_fetched_at), feed_id),
            )
        if cur.rowcount == 0:
            raise NotFound(f"Feed {feed_id} not found")

    def list_feeds(self) -> list[Feed]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM feeds ORDER BY id").fetchall()
        return [_row_to_feed(row) for row in rows]

    # Articles

    def find_article_by_fingerprint(self, fingerprint: str) -> Article | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM articles WHERE fingerprint = ?", (fingerprint,)
            ).fetchone()
        return _row_to_article(row) if row else None

    def get_article(self, article_id: int) -> Article | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM articles WHERE id = ?", (article_id,)).fetchone()
        return _row_to_article(row) if row else None

    def create_article(self, feed_id: int, entry: CandidateEntry, fingerprint: str) -> Article:
        created_at = utcnow()
        try:
            with self._connect() as conn:
                cur = conn.execute(
                    "INSERT INTO articles (feed_id, guid, title, url, published_at, author, "
                    "summary, content, fingerprint, created_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        feed_id,
                        entry.guid,
                        entry.title,
                        entry.url,
                        _to_db(entry.published_at),
                        entry.author,
                        entry.summary,
                        entry.content,
                        fingerprint,
                        _to_db(created_at),
                    ),
                )
                article_id = cur.lastrowid
        except sqlite3.IntegrityError as exc:
            constraint = "fingerprint" if "fingerprint" in str(exc) else "feed_guid"
            raise UniqueConstraintViolation(constraint, str(exc)) from exc
        return Article(
            id=article_id,
            feed_id=feed_id,
            guid=entry.guid,
            title=entry.title,
            url=entry.url,
            published_at=entry.published_at,
            author=entry.author,
            summary=entry.summary,
            content=entry.content,
            fingerprint=fingerprint,
            created_at=created_at,
        )

    def list_articles(self, feed_id: int | None = None) -> list[Article]:
        with self._connect() as conn:
            if feed_id is None:
                rows = conn.execute("SELECT * FROM articles ORDER BY id").fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM articles WHERE feed_id = ? ORDER BY id", (feed_id,)
                ).fetchall()
        return [_row_to_article(row) for row in rows]

    # Subscriptions

    def create_subscription(
        self,
        feed_id: int,
        user_id: str | None = None,
        team_id: int | None = None,
        category: str | None = None,
    ) -> Subscription:
        if self.get_feed(feed_id) is None:
            raise NotFound(f"Feed {feed_id} not found")
        created_at = utcnow()
        with self._connect() as conn:
            cur = conn.execute(
                "INSERT INTO subscriptions (feed_id, user_id, team_id, category, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (feed_id, user_id, team_id, category, _to_db(created_at)),
            )
        return Subscription(
            id=cur.lastrowid,
            feed_id=feed_id,
            user_id=user_id,
            team_id=team_id,
            category=category,
            created_at=created_at,
        )

    def list_subscriptions(self, feed_id: int) -> list[Subscription]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM subscriptions WHERE feed_id = ? ORDER BY id", (feed_id,)
            ).fetchall()
        return [_row_to_subscription(row) for row in rows]

    def find_due_feeds(
        self,
        cutoff: datetime,
        plan_filter: SubscriptionFilter | None = None,
    ) -> list[int]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT s.* FROM subscriptions s JOIN feeds f ON f.id = s.feed_id "
                "WHERE f.last_fetched_at IS NULL OR f.last_fetched_at < ? "
                "ORDER BY s.feed_id, s.id",
                (_to_db(cutoff),),
            ).fetchall()

        due: list[int] = []
        for row in rows:
            subscription = _row_to_subscription(row)
            if due and due[-1] == subscription.feed_id:
                continue
            if plan_filter is None or plan_filter(subscription):
                due.append(subscription.feed_id)
        return due

    # Credits

    def find_or_create_credit_cycle(
        self,
        subscriber_id: str,
        now: datetime,
        cycle_start: datetime,
        cycle_end: datetime,
    ) -> CreditCycle:
        moment = _to_db(now)
        with self._transaction() as conn:
            row = conn.execute(_ACTIVE_CYCLE_SQL, (subscriber_id, moment, moment)).fetchone()
            if row is not None:
                return _row_to_cycle(row)
            conn.execute(
                "INSERT INTO credit_cycles (subscriber_id, cycle_start, cycle_end, used) "
                "VALUES (?, ?, ?, 0)",
                (subscriber_id, _to_db(cycle_start), _to_db(cycle_end)),
            )
        return CreditCycle(subscriber_id, cycle_start, cycle_end, used=0)

    def create_credit_cycle(
        self, subscriber_id: str, cycle_start: datetime, cycle_end: datetime
    ) -> CreditCycle:
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO credit_cycles (subscriber_id, cycle_start, cycle_end, used) "
                "VALUES (?, ?, ?, 0)",
                (subscriber_id, _to_db(cycle_start), _to_db(cycle_end)),
            )
        return CreditCycle(subscriber_id, cycle_start, cycle_end, used=0)

    def increment_credit_usage(self, subscriber_id: str, now: datetime, ceiling: int) -> int | None:
        moment = _to_db(now)
        with self._transaction() as conn:
            row = conn.execute(_ACTIVE_CYCLE_SQL, (subscriber_id, moment, moment)).fetchone()
            if row is None:
                return None
            cur = conn.execute(
                "UPDATE credit_cycles SET used = used + 1 WHERE id = ? AND used < ?",
                (row["id"], ceiling),
            )
            if cur.rowcount == 0:
                return None
            return row["used"] + 1

    def upsert_read_marker(
        self, article_id: int, subscriber_id: str, read_at: datetime | None = None
    ) -> ReadMarker:
        read_at = read_at or utcnow()
        with self._connect() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO read_markers (article_id, subscriber_id, read_at) "
                "VALUES (?, ?, ?)",
                (article_id, subscriber_id, _to_db(read_at)),
            )
            row = conn.execute(
                "SELECT read_at FROM read_markers WHERE article_id = ? AND subscriber_id = ?",
                (article_id, subscriber_id),
            ).fetchone()
        return ReadMarker(article_id, subscriber_id, _from_db(row["read_at"]))


def _row_to_feed(row: sqlite3.Row) -> Feed:
    return Feed(
        id=row["id"],
        url=row["url"],
        title=row["title"],
        site_url=row["site_url"],
        last_fetched_at=_from_db(row["last_fetched_at"]),
        created_at=_from_db(row["created_at"]),
    )


def _row_to_article(row: sqlite3.Row) -> Article:
    return Article(
        id=row["id"],
        feed_id=row["feed_id"],
        guid=row["guid"],
        title=row["title"],
        url=row["url"],
        published_at=_from_db(row["published_at"]),
        author=row["author"],
        summary=row["summary"],
        content=row["content"],
        fingerprint=row["fingerprint"],
        created_at=_from_db(row["created_at"]),
    )


def _row_to_subscription(row: sqlite3.Row) -> Subscription:
    return Subscription(
        id=row["id"],
        feed_id=row["feed_id"],
        user_id=row["user_id"],
        team_id=row["team_id"],
        category=row["category"],
        created_at=_from_db(row["created_at"]),
    )


def _row_to_cycle(row: sqlite3.Row) -> CreditCycle:
    return CreditCycle(
        subscriber_id=row["subscriber_id"],
        cycle_start=_from_db(row["cycle_start"]),
        cycle_end=_from_db(row["cycle_end"]),
        used=row["used"],
    )
