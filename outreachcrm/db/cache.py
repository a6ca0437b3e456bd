"""
Local Cache - durable key-value storage of companies, logs and users.

Four independent records, all JSON text in one SQLite table:
    <namespace>_companies_v3   JSON array
    <namespace>_logs_v3        JSON array
    <namespace>_users_v1       JSON array
    <namespace>_initialized    'true'

The cache is the single source of truth for rendering; it knows nothing about
the remote store.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from outreachcrm.config import config
from outreachcrm.models import AppUser, Company, EmailLog

logger = logging.getLogger(__name__)

_SCHEMA = "CREATE TABLE IF NOT EXISTS kv (key TEXT PRIMARY KEY, value TEXT NOT NULL)"


@dataclass
class CacheSnapshot:
    companies: List[Company] = field(default_factory=list)
    logs: List[EmailLog] = field(default_factory=list)
    users: List[AppUser] = field(default_factory=list)
    initialized: bool = False


class LocalCache:
    """Per-installation durable store. Single process, no cross-process lock."""

    def __init__(self, path: str = None, namespace: str = None):
        self.path = path or config.CACHE_PATH
        namespace = namespace or config.CACHE_NAMESPACE
        self.key_companies = f"{namespace}_companies_v3"
        self.key_logs = f"{namespace}_logs_v3"
        self.key_users = f"{namespace}_users_v1"
        self.key_initialized = f"{namespace}_initialized"

        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        with self.cursor() as cur:
            cur.execute(_SCHEMA)

    @contextmanager
    def cursor(self):
        """
        One connection per operation: commit on success, roll back on error,
        always close.
        """
        conn = sqlite3.connect(self.path)
        try:
            cur = conn.cursor()
            try:
                yield cur
            finally:
                cur.close()
            conn.commit()
        except Exception as e:
            conn.rollback()
            logger.error(f"Cache write rolled back: {e}")
            raise
        finally:
            conn.close()

    def load(self) -> CacheSnapshot:
        """
        Read all four keys. Returns empty collections on first run.
        A key holding corrupt JSON is reset to empty on its own; the other
        keys still load.
        """
        with self.cursor() as cur:
            cur.execute("SELECT key, value FROM kv")
            raw = dict(cur.fetchall())

        if raw.get(self.key_initialized) != 'true':
            logger.info("Local cache not initialized — starting empty")
            return CacheSnapshot()

        return CacheSnapshot(
            companies=self._decode(raw, self.key_companies, Company.from_dict),
            logs=self._decode(raw, self.key_logs, EmailLog.from_dict),
            users=self._decode(raw, self.key_users, AppUser.from_dict),
            initialized=True,
        )

    def persist(self, companies: List[Company], logs: List[EmailLog], users: List[AppUser]) -> None:
        """Write the three collections, then the initialized flag, in one transaction."""
        rows = [
            (self.key_companies, json.dumps([c.to_dict() for c in companies])),
            (self.key_logs, json.dumps([l.to_dict() for l in logs])),
            (self.key_users, json.dumps([self._cacheable_user(u) for u in users])),
        ]
        with self.cursor() as cur:
            cur.executemany("INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)", rows)
            cur.execute(
                "INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)",
                (self.key_initialized, 'true'),
            )
        logger.debug(f"Persisted {len(companies)} companies, {len(logs)} logs, {len(users)} users")

    def is_initialized(self) -> bool:
        with self.cursor() as cur:
            cur.execute("SELECT value FROM kv WHERE key = ?", (self.key_initialized,))
            row = cur.fetchone()
        return bool(row) and row[0] == 'true'

    def clear(self) -> None:
        keys = (self.key_companies, self.key_logs, self.key_users, self.key_initialized)
        with self.cursor() as cur:
            cur.executemany("DELETE FROM kv WHERE key = ?", [(k,) for k in keys])
        logger.info("Local cache cleared")

    @staticmethod
    def _cacheable_user(user: AppUser) -> dict:
        # Passwords never rest in the local cache
        data = user.to_dict()
        data.pop('password', None)
        return data

    @staticmethod
    def _decode(raw: dict, key: str, factory) -> list:
        text = raw.get(key)
        if text is None:
            return []
        try:
            items = json.loads(text)
            if not isinstance(items, list):
                raise ValueError(f"expected a JSON array, got {type(items).__name__}")
            return [factory(item) for item in items]
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Malformed cache entry '{key}' reset to empty: {e}")
            return []
