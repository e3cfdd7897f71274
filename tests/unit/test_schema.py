"""Tests for the schema catalog."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from recordport.errors import SchemaError, UnknownFieldError, UnknownTypeError
from recordport.schema import FieldDescriptor, SchemaOracle, StaticSchemaCatalog

if TYPE_CHECKING:
    from pathlib import Path


class TestFieldDescriptor:
    def test_reference_target_implies_reference(self) -> None:
        fd = FieldDescriptor(name="account_id", reference_target="account")
        assert fd.is_reference
        assert fd.kind == "reference"

    def test_reference_kind_requires_target(self) -> None:
        with pytest.raises(ValueError, match="reference_target"):
            FieldDescriptor(name="account_id", kind="reference")

    def test_scalar_defaults(self) -> None:
        fd = FieldDescriptor(name="name")
        assert not fd.is_reference
        assert not fd.read_only
        assert fd.kind == "string"

    def test_is_frozen(self) -> None:
        fd = FieldDescriptor(name="name")
        with pytest.raises(ValueError):
            fd.name = "other"  # type: ignore[misc]


class TestStaticSchemaCatalog:
    def test_satisfies_protocol(self, catalog: StaticSchemaCatalog) -> None:
        assert isinstance(catalog, SchemaOracle)

    def test_describe_type(self, catalog: StaticSchemaCatalog) -> None:
        account = catalog.describe_type("account")
        assert account.name == "account"
        assert account.field_names[:3] == ["id", "name", "industry"]
        assert [r.child_type for r in account.child_relationships] == [
            "contact",
            "opportunity",
            "account_history",
            "support_case",
        ]

    def test_reference_fields_exclude_scalars(self, catalog: StaticSchemaCatalog) -> None:
        account = catalog.describe_type("account")
        assert [f.name for f in account.reference_fields] == ["parent_id", "owner_id"]

    def test_writable_fields_exclude_read_only(self, catalog: StaticSchemaCatalog) -> None:
        account = catalog.describe_type("account")
        names = [f.name for f in account.writable_fields]
        assert "id" not in names
        assert "created_date" not in names

    def test_unknown_type_suggests(self, catalog: StaticSchemaCatalog) -> None:
        with pytest.raises(UnknownTypeError) as exc_info:
            catalog.describe_type("acount")
        assert "account" in str(exc_info.value)

    def test_describe_field(self, catalog: StaticSchemaCatalog) -> None:
        fd = catalog.describe_field("contact", "reports_to_id")
        assert fd.reference_target == "contact"

    def test_unknown_field(self, catalog: StaticSchemaCatalog) -> None:
        with pytest.raises(UnknownFieldError) as exc_info:
            catalog.describe_field("contact", "emial")
        assert "email" in str(exc_info.value)

    def test_dangling_reference_target_rejected(self) -> None:
        data = {"types": {"a": {"fields": [{"name": "b_id", "reference_target": "b"}]}}}
        with pytest.raises(SchemaError, match="unknown type 'b'"):
            StaticSchemaCatalog.from_dict(data)

    def test_child_relationship_field_must_exist(self) -> None:
        data = {
            "types": {
                "parent": {
                    "child_relationships": [
                        {"name": "kids", "child_type": "child", "field": "parent_id"}
                    ]
                },
                "child": {"fields": [{"name": "name"}]},
            }
        }
        with pytest.raises(SchemaError, match="child.parent_id"):
            StaticSchemaCatalog.from_dict(data)

    def test_malformed_type_rejected(self) -> None:
        data = {"types": {"a": {"fields": [{"name": ""}]}}}
        with pytest.raises(SchemaError, match="type 'a'"):
            StaticSchemaCatalog.from_dict(data)

    def test_from_yaml(self, schema_file: Path) -> None:
        catalog = StaticSchemaCatalog.from_yaml(schema_file)
        assert "line_item" in catalog.type_names
        assert catalog.describe_field("line_item", "total").read_only
