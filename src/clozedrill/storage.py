"""SQLite-backed key/value store of JSON documents."""

from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

SCHEMA_VERSION = 1

logger = logging.getLogger(__name__)


class StorageUnavailableError(RuntimeError):
    """The backing database could not be read or written."""


@dataclass(frozen=True)
class Ok:
    """A document was found and decoded."""

    value: object


@dataclass(frozen=True)
class Empty:
    """No document is stored under the key."""


@dataclass(frozen=True)
class Corrupt:
    """A document exists but could not be used."""

    reason: str


ReadResult = Ok | Empty | Corrupt


class DocumentStore:
    """Whole-document reads and writes keyed by name."""

    def __init__(self, db_path: Path | str) -> None:
        """Open database and apply schema migrations."""
        try:
            if isinstance(db_path, Path):
                db_path.parent.mkdir(parents=True, exist_ok=True)
                target = str(db_path)
            else:
                target = db_path
            self._conn = sqlite3.connect(target)
        except (OSError, sqlite3.Error) as exc:
            raise StorageUnavailableError(f"Could not open progress database: {exc}") from exc
        try:
            self._conn.row_factory = sqlite3.Row
            self._apply_migrations()
        except sqlite3.Error as exc:
            self._conn.close()
            raise StorageUnavailableError(f"Could not open progress database: {exc}") from exc
        except StorageUnavailableError:
            self._conn.close()
            raise

    def _apply_migrations(self) -> None:
        """Apply forward-only schema migrations to latest version."""
        current = int(self._conn.execute("PRAGMA user_version").fetchone()[0])
        if current > SCHEMA_VERSION:
            raise StorageUnavailableError(
                f"Database schema version {current} is newer than supported {SCHEMA_VERSION}."
            )
        for version in range(current + 1, SCHEMA_VERSION + 1):
            if version == 1:
                self._migrate_to_v1()
            with self._conn:
                self._conn.execute(f"PRAGMA user_version = {version}")

    def _migrate_to_v1(self) -> None:
        with self._conn:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    key TEXT PRIMARY KEY,
                    body TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """)

    def read(self, key: str) -> ReadResult:
        """Return the decoded document for a key."""
        try:
            row = self._conn.execute("SELECT body FROM documents WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as exc:
            raise StorageUnavailableError(f"Could not read '{key}': {exc}") from exc
        if row is None:
            return Empty()
        try:
            return Ok(json.loads(str(row["body"])))
        except ValueError as exc:
            return Corrupt(f"invalid JSON: {exc}")

    def write(self, key: str, value: object) -> None:
        """Replace the document stored under a key."""
        body = json.dumps(value)
        now = datetime.now(UTC).isoformat()
        try:
            with self._conn:
                self._conn.execute(
                    """
                    INSERT INTO documents (key, body, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET body = excluded.body, updated_at = excluded.updated_at
                    """,
                    (key, body, now),
                )
        except sqlite3.Error as exc:
            raise StorageUnavailableError(f"Could not write '{key}': {exc}") from exc

    def close(self) -> None:
        """Close db connection."""
        self._conn.close()

    def __del__(self) -> None:  # pragma: no cover
        """Best-effort connection cleanup."""
        try:
            self.close()
        except Exception:
            pass


def read_or_default(store: DocumentStore, key: str) -> ReadResult:
    """Read a key, turning an unavailable store into `Corrupt`."""
    try:
        return store.read(key)
    except StorageUnavailableError as exc:
        logger.warning("Progress storage unavailable: %s", exc)
        return Corrupt(str(exc))
