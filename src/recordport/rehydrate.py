"""Rehydrator: commits a bundle into a store under fresh identities.

Groups are committed one at a time in bundle order. Before each commit,
every reference field is rewritten from the source identity to the
identity assigned in this import. References whose target has not been
committed (a later group, the same group, or a record that was never
bundled) are cleared and reported through the optional callback, which
may fill them in before the group is written.

After the last group, references that were left empty but whose target
was committed later in the same import are patched in a second pass.
"""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING, Any, Protocol

from recordport.bundle.models import UnresolvedReference
from recordport.config import PorterConfig
from recordport.observability.logging import get_logger

if TYPE_CHECKING:
    from recordport.bundle.models import Bundle, Record, RecordGroup
    from recordport.schema import SchemaOracle
    from recordport.store import RecordStore

log = get_logger(__name__)


class UnresolvedCallback(Protocol):
    """Called once per group that has unresolved references, before commit."""

    def __call__(self, type_name: str, unresolved: list[UnresolvedReference]) -> None: ...


class Rehydrator:
    """Imports bundles group by group, remapping identities as it goes."""

    def __init__(
        self,
        oracle: SchemaOracle,
        store: RecordStore,
        config: PorterConfig | None = None,
    ) -> None:
        self._oracle = oracle
        self._store = store
        self._config = config or PorterConfig()

    def rehydrate(
        self,
        bundle: Bundle,
        callback: UnresolvedCallback | None = None,
        *,
        repair_forward_references: bool | None = None,
    ) -> set[str]:
        """Commit every group of *bundle* and return the new root identities.

        Args:
            bundle: Bundle to import, groups in dependency order.
            callback: Optional hook for references that cannot be mapped.
            repair_forward_references: Patch references to records committed
                later in this import. Defaults to the configured value.

        Returns:
            New identities of the bundle's anchor records. For bundles that
            carry no anchor tag, the new identities of the first group.

        Raises:
            StoreError: If a commit fails. Groups committed before the
                failure stay committed.
        """
        if repair_forward_references is None:
            repair_forward_references = self._config.repair_forward_references

        remap: dict[str, str] = {}
        # (type, new identity, field, old target identity)
        deferred: list[tuple[str, str, str, str]] = []
        first_group_ids: list[str] = []

        for position, group in enumerate(bundle.groups):
            new_ids, leftovers = self._commit_group(group, remap, callback)
            deferred.extend(leftovers)
            if position == 0:
                first_group_ids = new_ids

        if repair_forward_references and deferred:
            self._repair(deferred, remap)

        log.info(
            "bundle_imported",
            groups=len(bundle.groups),
            records=len(remap),
            root_type=bundle.root_type,
        )
        if bundle.root_ids:
            return {remap[old] for old in bundle.root_ids if old in remap}
        return set(first_group_ids)

    def _commit_group(
        self,
        group: RecordGroup,
        remap: dict[str, str],
        callback: UnresolvedCallback | None,
    ) -> tuple[list[str], list[tuple[str, str, str, str]]]:
        descriptor = self._oracle.describe_type(group.type_name)
        reference_names = [fd.name for fd in descriptor.reference_fields]

        working: list[Record] = []
        unresolved: list[tuple[int, UnresolvedReference]] = []
        for index, original in enumerate(group.records):
            record = original.copy(keep_id=False)
            missing: set[str] = set()
            old_values: dict[str, Any] = {}
            for name in reference_names:
                old_target = record.values.get(name)
                if old_target is None:
                    continue
                new_target = remap.get(old_target)
                if new_target is not None:
                    record.values[name] = new_target
                else:
                    record.values[name] = None
                    missing.add(name)
                    old_values[name] = old_target
            working.append(record)
            if missing:
                unresolved.append(
                    (
                        index,
                        UnresolvedReference(
                            record=record,
                            fields=missing,
                            original_id=original.id,
                            original_values=old_values,
                        ),
                    )
                )

        if unresolved:
            log.info(
                "references_unresolved",
                type=group.type_name,
                records=len(unresolved),
                fields=sorted({f for _, u in unresolved for f in u.fields}),
            )
            if callback is not None:
                callback(group.type_name, [u for _, u in unresolved])

        new_ids = self._store.insert_batch(group.type_name, working)
        for original, new_id in zip(group.records, new_ids, strict=True):
            if original.id is not None:
                remap[original.id] = new_id
        log.debug("group_committed", type=group.type_name, count=len(new_ids))

        leftovers: list[tuple[str, str, str, str]] = []
        for index, ref in unresolved:
            for name in sorted(ref.fields):
                if ref.record.values.get(name) is None:
                    leftovers.append(
                        (group.type_name, new_ids[index], name, ref.original_values[name])
                    )
        return new_ids, leftovers

    def _repair(self, deferred: list[tuple[str, str, str, str]], remap: dict[str, str]) -> None:
        updates: dict[str, dict[str, dict[str, Any]]] = defaultdict(lambda: defaultdict(dict))
        repaired = 0
        for type_name, new_id, name, old_target in deferred:
            new_target = remap.get(old_target)
            if new_target is None:
                continue
            updates[type_name][new_id][name] = new_target
            repaired += 1

        for type_name, per_record in updates.items():
            self._store.update_batch(type_name, {rid: dict(v) for rid, v in per_record.items()})
        if repaired:
            log.info("references_repaired", count=repaired, unrepaired=len(deferred) - repaired)
