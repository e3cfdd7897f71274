"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

import pytest
from ruamel.yaml import YAML

from recordport.schema import StaticSchemaCatalog
from recordport.sqlite_store import SqliteRecordStore
from recordport.store import InMemoryRecordStore

if TYPE_CHECKING:
    from collections.abc import Iterator

# A small CRM-like schema. Accounts own contacts and opportunities,
# opportunities own line items, line items reference products, products
# reference vendors. Histories and cases are present but never auto-followed.
CRM_SCHEMA: dict[str, Any] = {
    "types": {
        "user": {
            "fields": [
                {"name": "id", "read_only": True},
                {"name": "name"},
            ],
        },
        "account": {
            "fields": [
                {"name": "id", "read_only": True},
                {"name": "name"},
                {"name": "industry"},
                {"name": "employees", "kind": "integer"},
                {"name": "parent_id", "reference_target": "account"},
                {"name": "owner_id", "reference_target": "user"},
                {"name": "created_date", "kind": "datetime", "read_only": True},
            ],
            "child_relationships": [
                {
                    "name": "contacts",
                    "child_type": "contact",
                    "field": "account_id",
                    "cascade": True,
                },
                {
                    "name": "opportunities",
                    "child_type": "opportunity",
                    "field": "account_id",
                    "cascade": True,
                },
                {
                    "name": "histories",
                    "child_type": "account_history",
                    "field": "account_id",
                    "cascade": True,
                },
                {"name": "cases", "child_type": "support_case", "field": "account_id"},
            ],
        },
        "contact": {
            "fields": [
                {"name": "id", "read_only": True},
                {"name": "name"},
                {"name": "email"},
                {"name": "account_id", "reference_target": "account"},
                {"name": "reports_to_id", "reference_target": "contact"},
                {"name": "owner_id", "reference_target": "user"},
            ],
        },
        "opportunity": {
            "fields": [
                {"name": "id", "read_only": True},
                {"name": "name"},
                {"name": "amount", "kind": "float"},
                {"name": "account_id", "reference_target": "account"},
                {"name": "contact_id", "reference_target": "contact"},
            ],
            "child_relationships": [
                {
                    "name": "line_items",
                    "child_type": "line_item",
                    "field": "opportunity_id",
                    "cascade": True,
                },
            ],
        },
        "line_item": {
            "fields": [
                {"name": "id", "read_only": True},
                {"name": "name"},
                {"name": "quantity", "kind": "integer"},
                {"name": "total", "kind": "float", "read_only": True},
                {"name": "opportunity_id", "reference_target": "opportunity"},
                {"name": "product_id", "reference_target": "product"},
            ],
        },
        "product": {
            "fields": [
                {"name": "id", "read_only": True},
                {"name": "name"},
                {"name": "vendor_id", "reference_target": "vendor"},
            ],
        },
        "vendor": {
            "fields": [
                {"name": "id", "read_only": True},
                {"name": "name"},
                {"name": "country"},
            ],
        },
        "account_history": {
            "fields": [
                {"name": "id", "read_only": True},
                {"name": "field"},
                {"name": "account_id", "reference_target": "account"},
            ],
        },
        "support_case": {
            "fields": [
                {"name": "id", "read_only": True},
                {"name": "subject"},
                {"name": "account_id", "reference_target": "account"},
            ],
        },
    }
}


def seed_crm(store: Any) -> None:
    """Populate a store with a fixed CRM data set (identities are readable)."""
    store.add("user", {"name": "Owner"}, record_id="usr-1")
    store.add("account", {"name": "Holding", "industry": "finance"}, record_id="acc-0")
    store.add(
        "account",
        {
            "name": "Acme",
            "industry": "retail",
            "employees": 120,
            "parent_id": "acc-0",
            "owner_id": "usr-1",
            "created_date": "2024-01-01",
        },
        record_id="acc-1",
    )
    store.add("account", {"name": "Other", "industry": "retail"}, record_id="acc-2")
    store.add(
        "contact",
        {"name": "Ann", "email": "ann@acme.test", "account_id": "acc-1", "owner_id": "usr-1"},
        record_id="con-1",
    )
    store.add(
        "contact",
        {"name": "Bob", "email": None, "account_id": "acc-1", "reports_to_id": "con-1"},
        record_id="con-2",
    )
    store.add("contact", {"name": "Zed", "account_id": "acc-2"}, record_id="con-3")
    store.add("vendor", {"name": "Widgets Ltd", "country": "NL"}, record_id="ven-1")
    store.add("product", {"name": "Widget", "vendor_id": "ven-1"}, record_id="prd-1")
    store.add(
        "opportunity",
        {"name": "Big deal", "amount": 1000.0, "account_id": "acc-1", "contact_id": "con-1"},
        record_id="opp-1",
    )
    store.add(
        "line_item",
        {
            "name": "Widgets",
            "quantity": 10,
            "total": 500.0,
            "opportunity_id": "opp-1",
            "product_id": "prd-1",
        },
        record_id="li-1",
    )
    store.add("account_history", {"field": "name", "account_id": "acc-1"}, record_id="ah-1")
    store.add("support_case", {"subject": "Broken", "account_id": "acc-1"}, record_id="case-1")


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def catalog() -> StaticSchemaCatalog:
    """CRM schema catalog."""
    return StaticSchemaCatalog.from_dict(CRM_SCHEMA)


@pytest.fixture
def crm_store() -> InMemoryRecordStore:
    """In-memory store seeded with the CRM data set."""
    store = InMemoryRecordStore()
    seed_crm(store)
    return store


@pytest.fixture
def sqlite_crm_store() -> Iterator[SqliteRecordStore]:
    """In-memory SQLite store seeded with the CRM data set."""
    store = SqliteRecordStore()
    seed_crm(store)
    yield store
    store.close()


@pytest.fixture
def schema_file(tmp_path: Path) -> Path:
    """The CRM schema written as a YAML catalog file."""
    path = tmp_path / "schema.yaml"
    yaml = YAML()
    with path.open("w") as f:
        yaml.dump(CRM_SCHEMA, f)
    return path


@pytest.fixture
def crm_db(tmp_path: Path) -> Path:
    """A SQLite database file seeded with the CRM data set."""
    path = tmp_path / "crm.db"
    store = SqliteRecordStore(path)
    seed_crm(store)
    store.close()
    return path
