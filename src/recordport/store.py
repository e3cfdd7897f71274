"""Record store protocol and in-memory implementation.

The RecordStore protocol defines the low-level read and write primitives
that the walker and the rehydrator delegate to. Implementations handle raw
storage; they translate backend failures into StoreError and otherwise
carry no business logic.

InMemoryRecordStore keeps everything in nested dicts and is the default
backend for tests and scripting. SqliteRecordStore provides a persistent
backend with a mutation audit trail and savepoint support.
"""

from __future__ import annotations

import copy
import uuid
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from recordport.bundle.models import Record
from recordport.errors import StoreError

if TYPE_CHECKING:
    from collections.abc import Collection, Iterable, Iterator

IDENTITY_FIELD = "id"


@runtime_checkable
class RecordStore(Protocol):
    """Storage backend protocol used by export and import."""

    def query(
        self,
        type_name: str,
        fields: list[str],
        filter_field: str,
        ids: Collection[str],
        order_by: str | None = None,
    ) -> list[Record]:
        """Return records of *type_name* whose *filter_field* is in *ids*.

        Records carry only the requested *fields* that are present on the
        stored record, plus their identity. Results are sorted by *order_by*
        and then by identity.
        """
        ...

    def insert_batch(self, type_name: str, records: list[Record]) -> list[str]:
        """Persist records as one unit and return their new identities.

        Each record's ``id`` is set to its new identity. Either every record
        is written or none is (StoreError is raised).
        """
        ...

    def update_batch(self, type_name: str, updates: dict[str, dict[str, Any]]) -> None:
        """Merge field values into existing records, keyed by identity."""
        ...

    def type_of(self, record_id: str) -> str | None:
        """Return the type of a stored record, or None if it does not exist."""
        ...


def new_identity() -> str:
    """Generate a globally unique record identity."""
    return uuid.uuid4().hex


def _sort_value(value: Any) -> tuple[int, Any]:
    if isinstance(value, bool):
        return (1, int(value))
    if isinstance(value, int | float):
        return (0, value)
    return (2, str(value))


def sort_records(records: Iterable[Record], order_by: str | None) -> list[Record]:
    """Sort records by *order_by* (nulls last), then by identity."""

    def key(record: Record) -> tuple[Any, ...]:
        identity = record.id or ""
        if order_by is None or order_by == IDENTITY_FIELD:
            return (False, (2, identity), identity)
        value = record.values.get(order_by)
        return (value is None, _sort_value(value) if value is not None else (0, 0), identity)

    return sorted(records, key=key)


def project(
    type_name: str, record_id: str, data: dict[str, Any], fields: list[str]
) -> Record:
    """Build a Record carrying only the requested fields present in *data*."""
    values = {name: data[name] for name in fields if name != IDENTITY_FIELD and name in data}
    return Record(type_name=type_name, id=record_id, values=values)


class InMemoryRecordStore:
    """In-memory dict-based record store.

    Records are kept per type in insertion order. Identities are unique
    across all types.
    """

    def __init__(self, data: dict[str, dict[str, dict[str, Any]]] | None = None) -> None:
        self._data: dict[str, dict[str, dict[str, Any]]] = copy.deepcopy(data) if data else {}
        self._types: dict[str, str] = {
            record_id: type_name
            for type_name, records in self._data.items()
            for record_id in records
        }
        self._savepoints: dict[str, tuple[dict[str, Any], dict[str, str]]] = {}

    # -- Seeding and inspection ------------------------------------------------

    def add(self, type_name: str, values: dict[str, Any], record_id: str | None = None) -> str:
        """Store one record directly and return its identity."""
        record_id = record_id or new_identity()
        if record_id in self._types:
            raise StoreError("add", type_name, f"identity '{record_id}' already exists")
        self._data.setdefault(type_name, {})[record_id] = dict(values)
        self._types[record_id] = type_name
        return record_id

    def get(self, record_id: str) -> dict[str, Any] | None:
        """Return a copy of a record's values, or None if not found."""
        type_name = self._types.get(record_id)
        if type_name is None:
            return None
        return dict(self._data[type_name][record_id])

    def records_of(self, type_name: str) -> dict[str, dict[str, Any]]:
        """Return all records of a type keyed by identity."""
        return {rid: dict(values) for rid, values in self._data.get(type_name, {}).items()}

    def count(self, type_name: str | None = None) -> int:
        if type_name is None:
            return len(self._types)
        return len(self._data.get(type_name, {}))

    # -- RecordStore -----------------------------------------------------------

    def query(
        self,
        type_name: str,
        fields: list[str],
        filter_field: str,
        ids: Collection[str],
        order_by: str | None = None,
    ) -> list[Record]:
        wanted = set(ids)
        matches: list[Record] = []
        for record_id, data in self._data.get(type_name, {}).items():
            key = record_id if filter_field == IDENTITY_FIELD else data.get(filter_field)
            if key is not None and key in wanted:
                matches.append(project(type_name, record_id, data, fields))
        return sort_records(matches, order_by)

    def insert_batch(self, type_name: str, records: list[Record]) -> list[str]:
        for i, record in enumerate(records):
            if record.type_name != type_name:
                raise StoreError(
                    "insert_batch",
                    type_name,
                    f"record {i} has type '{record.type_name}'",
                )
        new_ids = [new_identity() for _ in records]
        table = self._data.setdefault(type_name, {})
        for record, record_id in zip(records, new_ids, strict=True):
            table[record_id] = dict(record.values)
            self._types[record_id] = type_name
            record.id = record_id
        return new_ids

    def update_batch(self, type_name: str, updates: dict[str, dict[str, Any]]) -> None:
        table = self._data.get(type_name, {})
        missing = sorted(rid for rid in updates if rid not in table)
        if missing:
            raise StoreError("update_batch", type_name, f"unknown identities: {missing}")
        for record_id, values in updates.items():
            table[record_id].update(values)

    def type_of(self, record_id: str) -> str | None:
        return self._types.get(record_id)

    # -- Savepoints (deepcopy-based) -------------------------------------------

    def savepoint(self, name: str) -> None:
        """Save a named snapshot of current state."""
        self._savepoints[name] = (copy.deepcopy(self._data), dict(self._types))

    def rollback_to(self, name: str) -> None:
        """Restore state from a named snapshot."""
        if name not in self._savepoints:
            raise ValueError(f"No savepoint named '{name}'")
        data, types = self._savepoints[name]
        self._data = copy.deepcopy(data)
        self._types = dict(types)

    def release(self, name: str) -> None:
        """Discard a named snapshot."""
        self._savepoints.pop(name, None)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Run a block all-or-nothing: any exception restores prior state."""
        name = f"tx_{len(self._savepoints)}"
        self.savepoint(name)
        try:
            yield
        except BaseException:
            self.rollback_to(name)
            raise
        finally:
            self.release(name)
