"""Bundle data model.

A bundle is an ordered list of per-type record groups. Group order is the
order in which the walker first touched each type, and the rehydrator
commits groups in exactly that order: a group never depends on identities
from a later group except through references it reports as unresolved.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class Record:
    """A typed record.

    ``values`` distinguishes absent fields (missing key) from null fields
    (key present, value None).

    Attributes:
        type_name: Record type.
        id: Store-assigned identity, or None before the record is persisted.
        values: Field values, excluding the identity.
    """

    type_name: str
    id: str | None = None
    values: dict[str, Any] = field(default_factory=dict)

    def get(self, field_name: str, default: Any = None) -> Any:
        return self.values.get(field_name, default)

    def copy(self, *, keep_id: bool = True) -> Record:
        """Return a shallow copy, optionally without its identity."""
        return Record(
            type_name=self.type_name,
            id=self.id if keep_id else None,
            values=dict(self.values),
        )


@dataclass
class RecordGroup:
    """All bundled records of one type, in fetch order."""

    type_name: str
    records: list[Record] = field(default_factory=list)

    @property
    def ids(self) -> list[str]:
        return [r.id for r in self.records if r.id is not None]

    def __len__(self) -> int:
        return len(self.records)


@dataclass
class Bundle:
    """Ordered record groups produced by one export.

    Attributes:
        groups: Groups in dependency order.
        root_type: Type of the anchor records, when known.
        root_ids: Original identities of the anchor records.
    """

    groups: list[RecordGroup] = field(default_factory=list)
    root_type: str | None = None
    root_ids: list[str] = field(default_factory=list)
    # Traversal-time only; rebuilt from groups, never persisted.
    _index: dict[str, RecordGroup] = field(default_factory=dict, repr=False, compare=False)
    _seen_ids: set[str] = field(default_factory=set, repr=False, compare=False)

    def __post_init__(self) -> None:
        for group in self.groups:
            self._index.setdefault(group.type_name, group)
            self._seen_ids.update(group.ids)

    def group(self, type_name: str) -> RecordGroup | None:
        return self._index.get(type_name)

    def add_records(self, type_name: str, records: list[Record]) -> int:
        """Merge records into the group for *type_name*.

        The first call for a type creates its group and fixes its position.
        Records whose identity is already bundled are skipped.

        Returns:
            Number of records actually added.
        """
        group = self._index.get(type_name)
        if group is None:
            group = RecordGroup(type_name=type_name)
            self._index[type_name] = group
            self.groups.append(group)

        added = 0
        for record in records:
            if record.id is not None:
                if record.id in self._seen_ids:
                    continue
                self._seen_ids.add(record.id)
            group.records.append(record)
            added += 1
        return added

    def contains(self, record_id: str) -> bool:
        return record_id in self._seen_ids

    @property
    def type_order(self) -> list[str]:
        return [g.type_name for g in self.groups]

    @property
    def record_count(self) -> int:
        return sum(len(g) for g in self.groups)


@dataclass
class UnresolvedReference:
    """A record about to be committed with references that could not be mapped.

    The callback may assign new values on ``record.values`` for any of the
    unresolved fields; fields left as None are committed as null.

    Attributes:
        record: Working copy that will be committed (no identity yet).
        fields: Names of the unresolved reference fields.
        original_id: Identity of the record in the source store.
        original_values: Old target identities of the unresolved fields.
    """

    record: Record
    fields: set[str]
    original_id: str | None = None
    original_values: dict[str, Any] = field(default_factory=dict)
