"""SQLite-backed record storage with mutation audit trail.

SqliteRecordStore implements the RecordStore protocol using stdlib sqlite3.
Record values are stored as a JSON document per row, so absent and null
fields stay distinguishable. Every insert and update is recorded in the
``mutations`` table.

Savepoint support lets callers wrap a whole import in one unit of work
(see :meth:`SqliteRecordStore.transaction`).
"""

from __future__ import annotations

import json
import re
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

from recordport.errors import StoreError
from recordport.store import IDENTITY_FIELD, new_identity, project, sort_records

if TYPE_CHECKING:
    from collections.abc import Collection, Iterator

    from recordport.bundle.models import Record

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS records (
    record_id TEXT PRIMARY KEY,
    type      TEXT NOT NULL,
    data      JSON NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_records_type ON records(type);

CREATE TABLE IF NOT EXISTS mutations (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp  TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f','now')),
    operation  TEXT NOT NULL,
    type       TEXT NOT NULL,
    target_id  TEXT NOT NULL,
    delta      JSON
);
CREATE INDEX IF NOT EXISTS idx_mutations_target ON mutations(target_id);
"""

# Stay well below SQLITE_MAX_VARIABLE_NUMBER on older builds.
_QUERY_CHUNK = 500


class SqliteRecordStore:
    """SQLite-backed record store with mutation recording."""

    def __init__(
        self,
        db_path: str | Path = ":memory:",
        *,
        _conn: sqlite3.Connection | None = None,
    ) -> None:
        """Open or create a SQLite record database.

        Args:
            db_path: Path to ``.db`` file, or ``":memory:"`` for in-memory.
            _conn: Pre-existing connection (for testing). If provided,
                   *db_path* is ignored.
        """
        if _conn is not None:
            self._conn = _conn
            self._db_path: str = ":memory:"
        else:
            self._db_path = str(db_path) if isinstance(db_path, Path) else db_path
            self._conn = sqlite3.connect(
                self._db_path,
                isolation_level=None,  # autocommit; transactions are explicit savepoints
            )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")
        self._conn.executescript(_SCHEMA)
        self._tx_depth = 0

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def backup_to(self, dest_path: Path) -> None:
        """Copy the live database to a destination file.

        Uses SQLite's online backup API for a consistent copy.
        """
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        dest = sqlite3.connect(str(dest_path))
        try:
            self._conn.backup(dest)
        except Exception:
            dest.close()
            if dest_path.exists():
                dest_path.unlink()
            raise
        else:
            dest.close()

    # -- Mutation audit --------------------------------------------------------

    def _record_mutation(
        self,
        operation: str,
        type_name: str,
        target_id: str,
        delta: dict[str, Any] | None = None,
    ) -> None:
        self._conn.execute(
            "INSERT INTO mutations (operation, type, target_id, delta) VALUES (?, ?, ?, ?)",
            (
                operation,
                type_name,
                target_id,
                json.dumps(delta) if delta is not None else None,
            ),
        )

    def get_mutations(self, target_id: str | None = None) -> list[dict[str, Any]]:
        """Return recorded mutations, oldest first."""
        sql = "SELECT operation, type, target_id, delta FROM mutations"
        params: tuple[str, ...] = ()
        if target_id is not None:
            sql += " WHERE target_id = ?"
            params = (target_id,)
        rows = self._conn.execute(sql + " ORDER BY id", params).fetchall()
        return [
            {
                "operation": row["operation"],
                "type": row["type"],
                "target_id": row["target_id"],
                "delta": json.loads(row["delta"]) if row["delta"] else None,
            }
            for row in rows
        ]

    # -- Savepoints ------------------------------------------------------------

    _SAVEPOINT_RE = re.compile(r"^[A-Za-z0-9_]+$")

    def _validate_savepoint_name(self, name: str) -> None:
        """Validate savepoint name to prevent SQL injection."""
        if not self._SAVEPOINT_RE.match(name):
            msg = f"Invalid savepoint name {name!r}: must be alphanumeric/underscores only"
            raise ValueError(msg)

    def savepoint(self, name: str) -> None:
        """Create a SQLite savepoint."""
        self._validate_savepoint_name(name)
        self._conn.execute(f"SAVEPOINT sp_{name}")

    def rollback_to(self, name: str) -> None:
        """Rollback to a named savepoint (the savepoint stays active)."""
        self._validate_savepoint_name(name)
        self._conn.execute(f"ROLLBACK TO sp_{name}")

    def release(self, name: str) -> None:
        """Release (commit) a named savepoint."""
        self._validate_savepoint_name(name)
        self._conn.execute(f"RELEASE SAVEPOINT sp_{name}")

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Run a block all-or-nothing; nested calls use nested savepoints."""
        name = f"tx_{self._tx_depth}"
        self._tx_depth += 1
        self.savepoint(name)
        try:
            yield
        except BaseException:
            self.rollback_to(name)
            self.release(name)
            raise
        else:
            self.release(name)
        finally:
            self._tx_depth -= 1

    # -- Inspection ------------------------------------------------------------

    def get(self, record_id: str) -> dict[str, Any] | None:
        row = self._conn.execute(
            "SELECT data FROM records WHERE record_id = ?", (record_id,)
        ).fetchone()
        if row is None:
            return None
        data: dict[str, Any] = json.loads(row["data"])
        return data

    def records_of(self, type_name: str) -> dict[str, dict[str, Any]]:
        rows = self._conn.execute(
            "SELECT record_id, data FROM records WHERE type = ? ORDER BY rowid", (type_name,)
        ).fetchall()
        return {row["record_id"]: json.loads(row["data"]) for row in rows}

    def count(self, type_name: str | None = None) -> int:
        if type_name is None:
            row = self._conn.execute("SELECT COUNT(*) AS cnt FROM records").fetchone()
        else:
            row = self._conn.execute(
                "SELECT COUNT(*) AS cnt FROM records WHERE type = ?", (type_name,)
            ).fetchone()
        return row["cnt"]  # type: ignore[no-any-return]

    def add(self, type_name: str, values: dict[str, Any], record_id: str | None = None) -> str:
        """Store one record directly and return its identity."""
        record_id = record_id or new_identity()
        try:
            self._conn.execute(
                "INSERT INTO records (record_id, type, data) VALUES (?, ?, ?)",
                (record_id, type_name, json.dumps(values)),
            )
        except sqlite3.Error as e:
            raise StoreError("add", type_name, str(e)) from e
        self._record_mutation("insert", type_name, record_id, delta=values)
        return record_id

    # -- RecordStore -----------------------------------------------------------

    def query(
        self,
        type_name: str,
        fields: list[str],
        filter_field: str,
        ids: Collection[str],
        order_by: str | None = None,
    ) -> list[Record]:
        wanted = sorted(set(ids))
        matches: list[Record] = []
        try:
            for start in range(0, len(wanted), _QUERY_CHUNK):
                chunk = wanted[start : start + _QUERY_CHUNK]
                placeholders = ", ".join("?" for _ in chunk)
                if filter_field == IDENTITY_FIELD:
                    sql = (
                        "SELECT record_id, data FROM records "
                        f"WHERE type = ? AND record_id IN ({placeholders})"
                    )
                    params: list[str] = [type_name, *chunk]
                else:
                    sql = (
                        "SELECT record_id, data FROM records "
                        f"WHERE type = ? AND json_extract(data, ?) IN ({placeholders})"
                    )
                    params = [type_name, f'$."{filter_field}"', *chunk]
                for row in self._conn.execute(sql, params).fetchall():
                    data = json.loads(row["data"])
                    matches.append(project(type_name, row["record_id"], data, fields))
        except sqlite3.Error as e:
            raise StoreError("query", type_name, str(e)) from e
        return sort_records(matches, order_by)

    def insert_batch(self, type_name: str, records: list[Record]) -> list[str]:
        new_ids = [new_identity() for _ in records]
        name = f"batch_{self._tx_depth}"
        self.savepoint(name)
        try:
            for record, record_id in zip(records, new_ids, strict=True):
                if record.type_name != type_name:
                    raise StoreError(
                        "insert_batch", type_name, f"record has type '{record.type_name}'"
                    )
                self._conn.execute(
                    "INSERT INTO records (record_id, type, data) VALUES (?, ?, ?)",
                    (record_id, type_name, json.dumps(record.values)),
                )
                self._record_mutation("insert", type_name, record_id, delta=record.values)
        except sqlite3.Error as e:
            self.rollback_to(name)
            self.release(name)
            raise StoreError("insert_batch", type_name, str(e)) from e
        except StoreError:
            self.rollback_to(name)
            self.release(name)
            raise
        self.release(name)
        for record, record_id in zip(records, new_ids, strict=True):
            record.id = record_id
        return new_ids

    def update_batch(self, type_name: str, updates: dict[str, dict[str, Any]]) -> None:
        name = f"batch_{self._tx_depth}"
        self.savepoint(name)
        try:
            for record_id, values in updates.items():
                row = self._conn.execute(
                    "SELECT data FROM records WHERE record_id = ? AND type = ?",
                    (record_id, type_name),
                ).fetchone()
                if row is None:
                    raise StoreError("update_batch", type_name, f"unknown identity '{record_id}'")
                current = json.loads(row["data"])
                current.update(values)
                self._conn.execute(
                    "UPDATE records SET data = ? WHERE record_id = ?",
                    (json.dumps(current), record_id),
                )
                self._record_mutation("update", type_name, record_id, delta=dict(values))
        except sqlite3.Error as e:
            self.rollback_to(name)
            self.release(name)
            raise StoreError("update_batch", type_name, str(e)) from e
        except StoreError:
            self.rollback_to(name)
            self.release(name)
            raise
        self.release(name)

    def type_of(self, record_id: str) -> str | None:
        row = self._conn.execute(
            "SELECT type FROM records WHERE record_id = ?", (record_id,)
        ).fetchone()
        return row["type"] if row is not None else None
