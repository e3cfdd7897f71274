"""Schema catalog protocol and a static, file-backed implementation.

The schema catalog is the oracle every traversal consults: for a type it
returns the ordered field list (scalar vs. reference, read-only vs.
writable, reference target) and the one-to-many child relationships that
point at it, each with its owning foreign-key field and cascade flag.

Descriptors are immutable and are fetched on demand; callers do not cache
them across operations.
"""

from __future__ import annotations

from pathlib import Path  # noqa: TC003 - used at runtime
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from ruamel.yaml import YAML

from recordport.errors import SchemaError, UnknownFieldError, UnknownTypeError

REFERENCE_KIND = "reference"


class FieldDescriptor(BaseModel):
    """One field of a record type.

    Attributes:
        name: Field name as stored on records.
        kind: Scalar kind (``string``, ``integer``, ...) or ``reference``.
        is_reference: Whether the field holds the identity of another record.
        reference_target: Type the reference points at.
        read_only: Auto-generated or computed; never exported or written.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    kind: str = "string"
    is_reference: bool = False
    reference_target: str | None = None
    read_only: bool = False

    @model_validator(mode="before")
    @classmethod
    def _infer_reference(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            if data.get("kind") == REFERENCE_KIND or data.get("reference_target"):
                data["is_reference"] = True
                data.setdefault("kind", REFERENCE_KIND)
        return data

    @model_validator(mode="after")
    def _check_target(self) -> FieldDescriptor:
        if self.is_reference and not self.reference_target:
            raise ValueError(f"reference field '{self.name}' needs a reference_target")
        return self


class ChildRelationship(BaseModel):
    """A one-to-many edge into a type, identified by the child's foreign key.

    Attributes:
        name: Relationship name (checked against the child skip-list).
        child_type: Type of the child records.
        field: Owning foreign-key field on the child type.
        cascade: Children are deleted with the parent (owned relationship).
    """

    model_config = ConfigDict(frozen=True)

    name: str = ""
    child_type: str = Field(min_length=1)
    field: str = ""
    cascade: bool = False


class TypeDescriptor(BaseModel):
    """Description of one record type."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    fields: tuple[FieldDescriptor, ...] = ()
    child_relationships: tuple[ChildRelationship, ...] = ()

    def field(self, name: str) -> FieldDescriptor | None:
        """Return the named field, or None if the type has no such field."""
        for descriptor in self.fields:
            if descriptor.name == name:
                return descriptor
        return None

    def has_field(self, name: str) -> bool:
        return self.field(name) is not None

    @property
    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    @property
    def writable_fields(self) -> list[FieldDescriptor]:
        return [f for f in self.fields if not f.read_only]

    @property
    def reference_fields(self) -> list[FieldDescriptor]:
        """Writable reference fields, in declaration order."""
        return [f for f in self.fields if f.is_reference and not f.read_only]


@runtime_checkable
class SchemaOracle(Protocol):
    """Read-only schema catalog consulted during export and import."""

    def describe_type(self, type_name: str) -> TypeDescriptor:
        """Describe a type. Raises UnknownTypeError if it is not known."""
        ...

    def describe_field(self, type_name: str, field_name: str) -> FieldDescriptor:
        """Describe one field. Raises UnknownTypeError / UnknownFieldError."""
        ...


class StaticSchemaCatalog:
    """Schema oracle backed by a fixed set of type descriptors.

    Build it from a mapping (``from_dict``) or a YAML file (``from_yaml``)::

        types:
          account:
            fields:
              - {name: id, read_only: true}
              - {name: name}
              - {name: parent_id, reference_target: account}
            child_relationships:
              - {name: contacts, child_type: contact, field: account_id, cascade: true}
    """

    def __init__(self, types: list[TypeDescriptor] | None = None) -> None:
        self._types: dict[str, TypeDescriptor] = {}
        for descriptor in types or []:
            self._types[descriptor.name] = descriptor
        self._check_integrity()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StaticSchemaCatalog:
        """Create a catalog from a ``{"types": {name: {...}}}`` mapping.

        Raises:
            SchemaError: If a type definition is malformed.
        """
        types_data = data.get("types", data)
        descriptors: list[TypeDescriptor] = []
        for name, spec in types_data.items():
            spec = spec or {}
            try:
                descriptors.append(
                    TypeDescriptor(
                        name=name,
                        fields=tuple(spec.get("fields", [])),
                        child_relationships=tuple(spec.get("child_relationships", [])),
                    )
                )
            except ValidationError as e:
                raise SchemaError(f"Invalid definition for type '{name}': {e}") from e
        return cls(descriptors)

    @classmethod
    def from_yaml(cls, path: Path) -> StaticSchemaCatalog:
        """Load a catalog from a YAML file."""
        yaml = YAML(typ="safe")
        with path.open() as f:
            data = yaml.load(f) or {}
        return cls.from_dict(data)

    def _check_integrity(self) -> None:
        problems: list[str] = []
        for descriptor in self._types.values():
            for fd in descriptor.reference_fields:
                if fd.reference_target not in self._types:
                    problems.append(
                        f"{descriptor.name}.{fd.name} targets unknown type '{fd.reference_target}'"
                    )
            for rel in descriptor.child_relationships:
                child = self._types.get(rel.child_type)
                if child is None:
                    problems.append(
                        f"{descriptor.name} relationship '{rel.name}' has unknown child type "
                        f"'{rel.child_type}'"
                    )
                elif rel.field and not child.has_field(rel.field):
                    problems.append(
                        f"{descriptor.name} relationship '{rel.name}' uses missing field "
                        f"{rel.child_type}.{rel.field}"
                    )
        if problems:
            raise SchemaError("; ".join(problems))

    @property
    def type_names(self) -> list[str]:
        return sorted(self._types)

    def describe_type(self, type_name: str) -> TypeDescriptor:
        descriptor = self._types.get(type_name)
        if descriptor is None:
            raise UnknownTypeError(type_name=type_name, available=self.type_names)
        return descriptor

    def describe_field(self, type_name: str, field_name: str) -> FieldDescriptor:
        descriptor = self.describe_type(type_name)
        fd = descriptor.field(field_name)
        if fd is None:
            raise UnknownFieldError(
                type_name=type_name,
                field_name=field_name,
                available=descriptor.field_names,
            )
        return fd
