"""Graph walker: collects an anchor set and its related records into a bundle.

For each visited type the walker fetches the matching records, walks the
targets of followed reference fields first, then adds its own records to
the bundle, then walks followed child relationships. Referenced records
therefore always land in groups positioned before the records that point
at them, which is the order the rehydrator commits in.

Depth is bounded in both directions; a walk call past either cap returns
without effect.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from recordport.config import PorterConfig
from recordport.errors import InvalidInputError
from recordport.observability.logging import get_logger
from recordport.store import IDENTITY_FIELD

if TYPE_CHECKING:
    from collections.abc import Collection

    from recordport.bundle.models import Bundle
    from recordport.policy import TraversalPolicy
    from recordport.schema import SchemaOracle, TypeDescriptor
    from recordport.store import RecordStore

log = get_logger(__name__)


class GraphWalker:
    """Recursive exporter over a schema oracle and a record store."""

    def __init__(
        self,
        oracle: SchemaOracle,
        store: RecordStore,
        config: PorterConfig | None = None,
    ) -> None:
        self._oracle = oracle
        self._store = store
        self._config = config or PorterConfig()

    def projection(self, descriptor: TypeDescriptor, policy: TraversalPolicy) -> list[str]:
        """Fields fetched for a type: identity first, then sorted by name.

        Read-only and omitted fields are dropped. Reference fields are kept
        only when followed outward or as a child relationship's owning field.
        """
        names: list[str] = []
        for fd in descriptor.writable_fields:
            if fd.name == IDENTITY_FIELD or policy.omits(descriptor.name, fd.name):
                continue
            if fd.is_reference and not (
                policy.follows(descriptor.name, fd.name)
                or policy.follows_child(descriptor.name, fd.name)
            ):
                continue
            names.append(fd.name)
        return [IDENTITY_FIELD, *sorted(names)]

    def _order_field(self, descriptor: TypeDescriptor) -> str:
        if descriptor.has_field(self._config.order_field):
            return self._config.order_field
        return IDENTITY_FIELD

    def walk(
        self,
        ids: Collection[str],
        type_name: str,
        query_field: str | None,
        policy: TraversalPolicy | None,
        outward_depth: int,
        inward_depth: int,
        bundle: Bundle,
    ) -> None:
        """Fetch records of *type_name* and everything the policy reaches from them.

        Args:
            ids: Identities to match against *query_field*.
            type_name: Type to fetch.
            query_field: Field compared with *ids*; the identity field if None.
            policy: Traversal policy (required).
            outward_depth: Reference hops taken so far.
            inward_depth: Child hops taken so far.
            bundle: Bundle to add records to.

        Raises:
            InvalidInputError: If *policy* is None.
        """
        if policy is None:
            raise InvalidInputError("a traversal policy is required", operation="walk")
        if (
            outward_depth > self._config.max_walk_outward_depth
            or inward_depth > self._config.max_walk_inward_depth
        ):
            log.debug(
                "walk_depth_cutoff",
                type=type_name,
                outward_depth=outward_depth,
                inward_depth=inward_depth,
            )
            return
        if not ids:
            return

        descriptor = self._oracle.describe_type(type_name)
        fields = self.projection(descriptor, policy)
        records = self._store.query(
            type_name,
            fields,
            query_field or IDENTITY_FIELD,
            ids,
            self._order_field(descriptor),
        )
        if not records:
            return
        log.debug(
            "walk_fetched",
            type=type_name,
            count=len(records),
            outward_depth=outward_depth,
            inward_depth=inward_depth,
        )

        # Referenced records first so their groups precede this one
        for fd in sorted(descriptor.reference_fields, key=lambda f: f.name):
            if not policy.follows(type_name, fd.name):
                continue
            target_ids = sorted(
                {r.values[fd.name] for r in records if r.values.get(fd.name) is not None}
            )
            if not target_ids:
                continue
            target = self._oracle.describe_field(type_name, fd.name).reference_target
            if target is None:
                continue
            self.walk(
                target_ids,
                target,
                IDENTITY_FIELD,
                policy,
                outward_depth + 1,
                inward_depth,
                bundle,
            )

        bundle.add_records(type_name, records)

        parent_ids = [r.id for r in records if r.id is not None]
        for rel in descriptor.child_relationships:
            if not rel.field or not policy.follows_child(rel.child_type, rel.field):
                continue
            self.walk(
                parent_ids,
                rel.child_type,
                rel.field,
                policy,
                outward_depth,
                inward_depth + 1,
                bundle,
            )
