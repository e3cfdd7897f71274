"""Bundle codec: Bundle <-> portable JSON document.

Pure structural transformation. Group order and per-record key presence
are preserved exactly; all relationships are flat identity strings.

Document layout::

    {
      "format": "recordport.bundle",
      "version": 1,
      "root": {"type": "account", "ids": ["..."]},
      "groups": [
        {"type": "account", "records": [{"id": "...", "name": "Acme"}]}
      ]
    }
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from recordport.bundle.models import Bundle, Record, RecordGroup
from recordport.errors import BundleFormatError

if TYPE_CHECKING:
    from pathlib import Path

FORMAT_NAME = "recordport.bundle"
FORMAT_VERSION = 1
IDENTITY_KEY = "id"

Scalar = str | int | float | bool | None


class RootSection(BaseModel):
    """Explicit tag of the anchor group."""

    model_config = ConfigDict(extra="forbid")

    type: str = Field(min_length=1)
    ids: list[str] = Field(default_factory=list)


class GroupSection(BaseModel):
    """One record group as stored in the document."""

    model_config = ConfigDict(extra="forbid")

    type: str = Field(min_length=1)
    records: list[dict[str, Scalar]] = Field(default_factory=list)

    @field_validator("records")
    @classmethod
    def _identity_is_string(cls, records: list[dict[str, Scalar]]) -> list[dict[str, Scalar]]:
        for i, record in enumerate(records):
            identity = record.get(IDENTITY_KEY)
            if identity is not None and not isinstance(identity, str):
                raise ValueError(f"record {i}: '{IDENTITY_KEY}' must be a string")
        return records


class BundleDocument(BaseModel):
    """Top-level portable document."""

    model_config = ConfigDict(extra="forbid")

    format: Literal["recordport.bundle"] = FORMAT_NAME
    version: int = FORMAT_VERSION
    root: RootSection | None = None
    groups: list[GroupSection] = Field(default_factory=list)

    @field_validator("version")
    @classmethod
    def _supported_version(cls, version: int) -> int:
        if version > FORMAT_VERSION:
            raise ValueError(f"unsupported bundle version {version} (max {FORMAT_VERSION})")
        return version


def _validation_problems(error: ValidationError) -> list[str]:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"])
        problems.append(f"{location}: {item['msg']}" if location else item["msg"])
    return problems


def _check_scalar(type_name: str, key: str, value: Any) -> None:
    if value is not None and not isinstance(value, str | int | float | bool):
        raise BundleFormatError(
            [f"{type_name}.{key}: nested value of type {type(value).__name__} is not allowed"]
        )


def encode_bundle(bundle: Bundle) -> dict[str, Any]:
    """Convert a bundle to a JSON-compatible document.

    Raises:
        BundleFormatError: If a record holds a non-scalar value.
    """
    groups: list[dict[str, Any]] = []
    for group in bundle.groups:
        records: list[dict[str, Any]] = []
        for record in group.records:
            data: dict[str, Any] = {}
            if record.id is not None:
                data[IDENTITY_KEY] = record.id
            for key, value in record.values.items():
                _check_scalar(group.type_name, key, value)
                data[key] = value
            records.append(data)
        groups.append({"type": group.type_name, "records": records})

    document: dict[str, Any] = {"format": FORMAT_NAME, "version": FORMAT_VERSION}
    if bundle.root_type is not None:
        document["root"] = {"type": bundle.root_type, "ids": list(bundle.root_ids)}
    document["groups"] = groups
    return document


def decode_bundle(document: dict[str, Any]) -> Bundle:
    """Convert a portable document back into a bundle.

    Raises:
        BundleFormatError: If the document does not match the expected layout.
    """
    try:
        parsed = BundleDocument.model_validate(document)
    except ValidationError as e:
        raise BundleFormatError(_validation_problems(e)) from e

    groups: list[RecordGroup] = []
    for section in parsed.groups:
        records = []
        for data in section.records:
            values = dict(data)
            identity = values.pop(IDENTITY_KEY, None)
            records.append(Record(type_name=section.type, id=identity, values=values))
        groups.append(RecordGroup(type_name=section.type, records=records))

    root_type = parsed.root.type if parsed.root else None
    root_ids = list(parsed.root.ids) if parsed.root else []
    return Bundle(groups=groups, root_type=root_type, root_ids=root_ids)


def dumps(bundle: Bundle, indent: int | None = 2) -> str:
    """Serialize a bundle to JSON text."""
    return json.dumps(encode_bundle(bundle), indent=indent, ensure_ascii=False)


def loads(text: str) -> Bundle:
    """Parse JSON text into a bundle.

    Raises:
        BundleFormatError: If the text is not valid JSON or not a bundle.
    """
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise BundleFormatError([f"invalid JSON: {e}"]) from e
    if not isinstance(document, dict):
        raise BundleFormatError(["document must be a JSON object"])
    return decode_bundle(document)


def write_bundle(bundle: Bundle, path: Path) -> Path:
    """Write a bundle as a JSON file, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dumps(bundle))
    return path


def read_bundle(path: Path) -> Bundle:
    """Read a bundle from a JSON file."""
    return loads(path.read_text())
