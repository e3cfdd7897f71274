"""Export and import entry points.

RecordPorter ties the schema oracle, the record store, the walker, the
codec and the rehydrator together:

- ``serialize(anchor_ids, policy)`` walks the anchor set and returns a
  portable document
- ``deserialize(document, callback)`` commits a document and returns the
  new identities of its anchor records

Export only reads. Import writes group by group with no rollback of its
own; wrap it in the store's ``transaction()`` for all-or-nothing imports.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from recordport.bundle.codec import decode_bundle, encode_bundle
from recordport.bundle.models import Bundle
from recordport.config import PorterConfig
from recordport.errors import InvalidInputError
from recordport.observability.logging import get_logger
from recordport.policy import TraversalPolicy
from recordport.rehydrate import Rehydrator
from recordport.walker import GraphWalker

if TYPE_CHECKING:
    from collections.abc import Iterable

    from recordport.rehydrate import UnresolvedCallback
    from recordport.schema import SchemaOracle
    from recordport.store import RecordStore

log = get_logger(__name__)


class RecordPorter:
    """Exports record subgraphs to documents and imports them back."""

    def __init__(
        self,
        oracle: SchemaOracle,
        store: RecordStore,
        config: PorterConfig | None = None,
    ) -> None:
        self.oracle = oracle
        self.store = store
        self.config = config or PorterConfig()
        self._walker = GraphWalker(oracle, store, self.config)
        self._rehydrator = Rehydrator(oracle, store, self.config)

    def derive_policy(self, type_name: str) -> TraversalPolicy:
        """Auto-derive the default traversal policy for *type_name*."""
        return TraversalPolicy.derive(self.oracle, type_name, self.config)

    def _anchor_type(self, anchor_ids: list[str], type_name: str | None) -> str:
        if type_name is not None:
            self.oracle.describe_type(type_name)
            return type_name
        types: set[str] = set()
        unknown: list[str] = []
        for record_id in anchor_ids:
            found = self.store.type_of(record_id)
            if found is None:
                unknown.append(record_id)
            else:
                types.add(found)
        if unknown:
            raise InvalidInputError(f"unknown anchor identities: {unknown}", operation="serialize")
        if len(types) > 1:
            raise InvalidInputError(
                f"anchors must share one type, got {sorted(types)}", operation="serialize"
            )
        return types.pop()

    def export_bundle(
        self,
        anchor_ids: Iterable[str] | None,
        policy: TraversalPolicy | None = None,
        *,
        type_name: str | None = None,
    ) -> Bundle:
        """Walk the anchor set and return the populated bundle.

        Args:
            anchor_ids: Identities of the anchor records (non-empty).
            policy: Traversal policy; auto-derived for the anchor type if None.
            type_name: Anchor type; looked up in the store if None.

        Raises:
            InvalidInputError: If the anchor set is empty, None, unknown or
                of mixed types.
        """
        if anchor_ids is None:
            raise InvalidInputError("anchor identities must not be None", operation="serialize")
        ids = list(dict.fromkeys(anchor_ids))
        if not ids:
            raise InvalidInputError("anchor identities must not be empty", operation="serialize")

        root_type = self._anchor_type(ids, type_name)
        if policy is None:
            policy = self.derive_policy(root_type)

        bundle = Bundle(root_type=root_type, root_ids=ids)
        self._walker.walk(ids, root_type, None, policy, 0, 0, bundle)
        log.info(
            "bundle_exported",
            root_type=root_type,
            anchors=len(ids),
            groups=bundle.type_order,
            records=bundle.record_count,
        )
        return bundle

    def serialize(
        self,
        anchor_ids: Iterable[str] | None,
        policy: TraversalPolicy | None = None,
        *,
        type_name: str | None = None,
    ) -> dict[str, Any]:
        """Export the anchor subgraph as a portable document."""
        return encode_bundle(self.export_bundle(anchor_ids, policy, type_name=type_name))

    def import_bundle(
        self,
        bundle: Bundle,
        callback: UnresolvedCallback | None = None,
    ) -> set[str]:
        """Commit a bundle and return the new anchor identities."""
        return self._rehydrator.rehydrate(bundle, callback)

    def deserialize(
        self,
        document: dict[str, Any],
        callback: UnresolvedCallback | None = None,
    ) -> set[str]:
        """Commit a portable document and return the new anchor identities.

        Raises:
            BundleFormatError: If the document is malformed.
            StoreError: If a commit fails.
        """
        return self.import_bundle(decode_bundle(document), callback)
