"""Tests for the graph walker."""

from __future__ import annotations

import pytest

from recordport.bundle.models import Bundle
from recordport.config import PorterConfig
from recordport.errors import InvalidInputError
from recordport.policy import TraversalPolicy
from recordport.schema import StaticSchemaCatalog
from recordport.store import InMemoryRecordStore
from recordport.walker import GraphWalker


def _walk(
    catalog: StaticSchemaCatalog,
    store: InMemoryRecordStore,
    ids: list[str],
    type_name: str,
    policy: TraversalPolicy,
    config: PorterConfig | None = None,
) -> Bundle:
    bundle = Bundle()
    GraphWalker(catalog, store, config).walk(ids, type_name, None, policy, 0, 0, bundle)
    return bundle


def _walk_account(catalog: StaticSchemaCatalog, store: InMemoryRecordStore) -> Bundle:
    return _walk(catalog, store, ["acc-1"], "account", TraversalPolicy.derive(catalog, "account"))


@pytest.fixture
def node_catalog() -> StaticSchemaCatalog:
    """A single self-referencing type."""
    return StaticSchemaCatalog.from_dict(
        {
            "types": {
                "node": {
                    "fields": [
                        {"name": "id", "read_only": True},
                        {"name": "name"},
                        {"name": "next_id", "reference_target": "node"},
                    ]
                }
            }
        }
    )


@pytest.fixture
def node_chain() -> InMemoryRecordStore:
    """n0 -> n1 -> n2 -> n3 -> n4 -> n5 through next_id."""
    store = InMemoryRecordStore()
    for i in range(6):
        values = {"name": f"node {i}"}
        if i < 5:
            values["next_id"] = f"n{i + 1}"
        store.add("node", values, record_id=f"n{i}")
    return store


class TestProjection:
    def test_identity_first_then_sorted(
        self, catalog: StaticSchemaCatalog, crm_store: InMemoryRecordStore
    ) -> None:
        walker = GraphWalker(catalog, crm_store)
        policy = TraversalPolicy.derive(catalog, "account")

        fields = walker.projection(catalog.describe_type("account"), policy)

        assert fields == ["id", "employees", "industry", "name", "parent_id"]

    def test_unfollowed_references_and_omissions_dropped(
        self, catalog: StaticSchemaCatalog, crm_store: InMemoryRecordStore
    ) -> None:
        walker = GraphWalker(catalog, crm_store)
        policy = TraversalPolicy().follow_child("contact", "account_id").omit("contact", "email")

        fields = walker.projection(catalog.describe_type("contact"), policy)

        assert fields == ["id", "account_id", "name"]


class TestWalk:
    def test_crm_walk_group_order(
        self, catalog: StaticSchemaCatalog, crm_store: InMemoryRecordStore
    ) -> None:
        """Referenced types come before the types that point at them."""
        bundle = _walk_account(catalog, crm_store)

        assert bundle.type_order == [
            "account",
            "contact",
            "opportunity",
            "vendor",
            "product",
            "line_item",
        ]
        assert bundle.group("account").ids == ["acc-0", "acc-1"]
        assert bundle.group("contact").ids == ["con-1", "con-2"]
        assert bundle.group("line_item").ids == ["li-1"]

    def test_unrelated_records_excluded(
        self, catalog: StaticSchemaCatalog, crm_store: InMemoryRecordStore
    ) -> None:
        bundle = _walk_account(catalog, crm_store)

        assert not bundle.contains("acc-2")
        assert not bundle.contains("con-3")
        assert not bundle.contains("usr-1")
        assert not bundle.contains("ah-1")
        assert not bundle.contains("case-1")

    def test_read_only_and_skipped_fields_not_exported(
        self, catalog: StaticSchemaCatalog, crm_store: InMemoryRecordStore
    ) -> None:
        bundle = _walk_account(catalog, crm_store)

        acme = bundle.group("account").records[1]
        assert acme.values == {
            "employees": 120,
            "industry": "retail",
            "name": "Acme",
            "parent_id": "acc-0",
        }
        line_item = bundle.group("line_item").records[0]
        assert "total" not in line_item.values

    def test_null_and_absent_fields_preserved(
        self, catalog: StaticSchemaCatalog, crm_store: InMemoryRecordStore
    ) -> None:
        bundle = _walk_account(catalog, crm_store)

        ann, bob = bundle.group("contact").records
        assert "reports_to_id" not in ann.values
        assert "email" in bob.values
        assert bob.values["email"] is None

    def test_records_are_deduplicated(
        self, catalog: StaticSchemaCatalog, crm_store: InMemoryRecordStore
    ) -> None:
        """con-1 is reached as a child, as a manager and as a deal contact."""
        bundle = _walk_account(catalog, crm_store)

        assert [r.id for r in bundle.group("contact").records].count("con-1") == 1

    def test_records_sorted_by_name(
        self, catalog: StaticSchemaCatalog, crm_store: InMemoryRecordStore
    ) -> None:
        crm_store.add("contact", {"name": "Aaron", "account_id": "acc-1"}, record_id="con-9")
        policy = TraversalPolicy().follow_child("contact", "account_id")

        bundle = _walk(catalog, crm_store, ["acc-1"], "account", policy)

        assert bundle.group("contact").ids == ["con-9", "con-1", "con-2"]

    def test_empty_policy_exports_anchors_only(
        self, catalog: StaticSchemaCatalog, crm_store: InMemoryRecordStore
    ) -> None:
        bundle = _walk(catalog, crm_store, ["acc-1", "acc-2"], "account", TraversalPolicy())

        assert bundle.type_order == ["account"]
        assert bundle.group("account").ids == ["acc-1", "acc-2"]
        assert "parent_id" not in bundle.group("account").records[0].values

    def test_missing_ids_produce_no_group(
        self, catalog: StaticSchemaCatalog, crm_store: InMemoryRecordStore
    ) -> None:
        bundle = _walk(catalog, crm_store, ["acc-404"], "account", TraversalPolicy())
        assert bundle.groups == []

    def test_empty_ids_are_a_no_op(
        self, catalog: StaticSchemaCatalog, crm_store: InMemoryRecordStore
    ) -> None:
        bundle = _walk(catalog, crm_store, [], "account", TraversalPolicy())
        assert bundle.groups == []

    def test_policy_required(
        self, catalog: StaticSchemaCatalog, crm_store: InMemoryRecordStore
    ) -> None:
        walker = GraphWalker(catalog, crm_store)
        with pytest.raises(InvalidInputError, match="policy"):
            walker.walk(["acc-1"], "account", None, None, 0, 0, Bundle())


class TestDepthCaps:
    def test_outward_chain_stops_after_three_hops(
        self, node_catalog: StaticSchemaCatalog, node_chain: InMemoryRecordStore
    ) -> None:
        policy = TraversalPolicy().follow("node", "next_id")

        bundle = _walk(node_catalog, node_chain, ["n0"], "node", policy)

        # Deepest target is added first
        assert bundle.group("node").ids == ["n3", "n2", "n1", "n0"]

    def test_configured_outward_cap(
        self, node_catalog: StaticSchemaCatalog, node_chain: InMemoryRecordStore
    ) -> None:
        policy = TraversalPolicy().follow("node", "next_id")
        config = PorterConfig(max_walk_outward_depth=1)

        bundle = _walk(node_catalog, node_chain, ["n0"], "node", policy, config)

        assert bundle.group("node").ids == ["n1", "n0"]

    def test_cycle_terminates(self, node_catalog: StaticSchemaCatalog) -> None:
        store = InMemoryRecordStore()
        store.add("node", {"name": "a", "next_id": "b"}, record_id="a")
        store.add("node", {"name": "b", "next_id": "a"}, record_id="b")
        policy = TraversalPolicy().follow("node", "next_id")

        bundle = _walk(node_catalog, store, ["a"], "node", policy)

        assert sorted(bundle.group("node").ids) == ["a", "b"]

    def test_inward_chain_stops_after_three_hops(self) -> None:
        catalog = StaticSchemaCatalog.from_dict(
            {
                "types": {
                    "folder": {
                        "fields": [
                            {"name": "id", "read_only": True},
                            {"name": "name"},
                            {"name": "parent_id", "reference_target": "folder"},
                        ],
                        "child_relationships": [
                            {
                                "name": "subfolders",
                                "child_type": "folder",
                                "field": "parent_id",
                                "cascade": True,
                            }
                        ],
                    }
                }
            }
        )
        store = InMemoryRecordStore()
        store.add("folder", {"name": "f0"}, record_id="f0")
        for i in range(1, 6):
            store.add("folder", {"name": f"f{i}", "parent_id": f"f{i - 1}"}, record_id=f"f{i}")

        bundle = _walk(catalog, store, ["f0"], "folder", TraversalPolicy.derive(catalog, "folder"))

        assert bundle.group("folder").ids == ["f0", "f1", "f2", "f3"]
