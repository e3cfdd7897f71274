"""Error types for export and import runs.

Invalid input is raised before anything is read or written. Store failures
propagate unchanged through the walker and the rehydrator; rolling back a
partially applied import is the caller's job (see
``SqliteRecordStore.transaction``).

Unresolved references are not errors: they are surfaced through the
rehydration callback. Depth cutoffs during traversal are silent.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from difflib import get_close_matches


class RecordPortError(Exception):
    """Base class for all recordport errors."""


@dataclass
class InvalidInputError(RecordPortError):
    """Raised when an operation is called with unusable arguments.

    Attributes:
        reason: What is wrong with the input.
        operation: The operation that rejected it (e.g. ``serialize``).
    """

    reason: str
    operation: str = ""

    def __post_init__(self) -> None:
        msg = self.reason
        if self.operation:
            msg = f"{self.operation}: {msg}"
        super().__init__(msg)


class SchemaError(RecordPortError):
    """Base class for schema catalog lookup failures."""


@dataclass
class UnknownTypeError(SchemaError):
    """Raised when the schema catalog does not describe a type.

    Attributes:
        type_name: The type that was looked up.
        available: Known type names, used for suggestions.
    """

    type_name: str
    available: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        msg = f"Unknown record type '{self.type_name}'"
        suggestions = get_close_matches(self.type_name, self.available, n=3, cutoff=0.6)
        if suggestions:
            msg += f" (did you mean: {', '.join(suggestions)}?)"
        super().__init__(msg)


@dataclass
class UnknownFieldError(SchemaError):
    """Raised when a type has no field of the requested name.

    Attributes:
        type_name: The type that was inspected.
        field_name: The missing field.
        available: Field names the type does declare.
    """

    type_name: str
    field_name: str
    available: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        msg = f"Type '{self.type_name}' has no field '{self.field_name}'"
        suggestions = get_close_matches(self.field_name, self.available, n=3, cutoff=0.6)
        if suggestions:
            msg += f" (did you mean: {', '.join(suggestions)}?)"
        super().__init__(msg)


@dataclass
class StoreError(RecordPortError):
    """Raised by record store backends when a query or commit fails.

    Attributes:
        operation: Store operation that failed (query, insert_batch, ...).
        type_name: Record type involved.
        detail: Backend error message.
    """

    operation: str
    type_name: str
    detail: str = ""

    def __post_init__(self) -> None:
        msg = f"Store {self.operation} failed for type '{self.type_name}'"
        if self.detail:
            msg += f": {self.detail}"
        super().__init__(msg)


@dataclass
class BundleFormatError(RecordPortError):
    """Raised when a portable document cannot be decoded or encoded.

    Attributes:
        problems: One line per structural problem found.
    """

    problems: list[str]

    def __post_init__(self) -> None:
        msg = "Invalid bundle document"
        if self.problems:
            msg += f": {len(self.problems)} problem(s)"
        super().__init__(msg)

    def __str__(self) -> str:
        lines = ["Invalid bundle document:"]
        for problem in self.problems[:5]:
            lines.append(f"  - {problem}")
        if len(self.problems) > 5:
            lines.append(f"  - ... and {len(self.problems) - 5} more")
        return "\n".join(lines)
