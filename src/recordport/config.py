"""Porter configuration loading.

Configuration is optional: every value has a default matching the
documented traversal behavior. A YAML file can override any of them, and a
few values can be overridden again from the environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path  # noqa: TC003 - used at runtime
from typing import Any

from ruamel.yaml import YAML

# Default configuration values
DEFAULT_ORDER_FIELD = "name"

# Walker cutoffs: a walk call deeper than these returns without effect.
MAX_WALK_OUTWARD_DEPTH = 3
MAX_WALK_INWARD_DEPTH = 3

# Auto-derive cutoffs: types deeper than these are not expanded.
MAX_DERIVE_OUTWARD_DEPTH = 2
MAX_DERIVE_INWARD_DEPTH = 3

# Owner, creator, modifier and record-classification references.
REFERENCE_SKIP_LIST = frozenset(
    {
        "owner_id",
        "created_by_id",
        "last_modified_by_id",
        "record_type_id",
    }
)

# Audit, sharing, feed and history-like child relationships.
CHILD_RELATIONSHIP_SKIP_LIST = frozenset(
    {
        "activity_histories",
        "attachments",
        "feed_subscriptions",
        "feeds",
        "histories",
        "notes",
        "notes_and_attachments",
        "open_activities",
        "process_instances",
        "process_steps",
        "shares",
        "tags",
        "topic_assignments",
    }
)

CHILD_TYPE_SKIP_SUFFIXES = ("_history", "_share", "_feed")


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class PorterConfig:
    """Tunable traversal and import settings.

    Attributes:
        order_field: Preferred stable sort key for fetched records. Types
            without this field are ordered by identity.
        max_walk_outward_depth: Reference hops the walker will fetch.
        max_walk_inward_depth: Child hops the walker will fetch.
        max_derive_outward_depth: Reference hops auto-derive will expand.
        max_derive_inward_depth: Child hops auto-derive will expand.
        reference_skip_list: Reference fields auto-derive never follows.
        child_relationship_skip_list: Child relationship names auto-derive
            never follows.
        child_type_skip_suffixes: Child types auto-derive never follows.
        repair_forward_references: Patch references to records committed
            later in the same import once the whole bundle is in.
    """

    order_field: str = DEFAULT_ORDER_FIELD
    max_walk_outward_depth: int = MAX_WALK_OUTWARD_DEPTH
    max_walk_inward_depth: int = MAX_WALK_INWARD_DEPTH
    max_derive_outward_depth: int = MAX_DERIVE_OUTWARD_DEPTH
    max_derive_inward_depth: int = MAX_DERIVE_INWARD_DEPTH
    reference_skip_list: frozenset[str] = field(default=REFERENCE_SKIP_LIST)
    child_relationship_skip_list: frozenset[str] = field(default=CHILD_RELATIONSHIP_SKIP_LIST)
    child_type_skip_suffixes: tuple[str, ...] = CHILD_TYPE_SKIP_SUFFIXES
    repair_forward_references: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PorterConfig:
        """Create config from a dictionary, ignoring unknown keys.

        Raises:
            ValueError: If a depth value is negative.
        """
        known = {f.name for f in fields(cls)}
        values: dict[str, Any] = {k: v for k, v in data.items() if k in known}
        for key in ("reference_skip_list", "child_relationship_skip_list"):
            if key in values:
                values[key] = frozenset(values[key])
        if "child_type_skip_suffixes" in values:
            values["child_type_skip_suffixes"] = tuple(values["child_type_skip_suffixes"])
        config = cls(**values)
        config._validate()
        return config

    def _validate(self) -> None:
        for name in (
            "max_walk_outward_depth",
            "max_walk_inward_depth",
            "max_derive_outward_depth",
            "max_derive_inward_depth",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0, got {getattr(self, name)}")

    def with_env_overrides(self) -> PorterConfig:
        """Apply RECORDPORT_* environment overrides in place and return self."""
        outward = os.getenv("RECORDPORT_MAX_OUTWARD_DEPTH")
        if outward:
            self.max_walk_outward_depth = int(outward)
        inward = os.getenv("RECORDPORT_MAX_INWARD_DEPTH")
        if inward:
            self.max_walk_inward_depth = int(inward)
        repair = os.getenv("RECORDPORT_REPAIR_FORWARD_REFERENCES")
        if repair:
            self.repair_forward_references = _env_bool(repair)
        self._validate()
        return self


def load_config(path: Path | None = None) -> PorterConfig:
    """Load porter configuration.

    Args:
        path: Optional YAML file. When None or missing, defaults are used.

    Returns:
        Configuration with environment overrides applied.
    """
    data: dict[str, Any] = {}
    if path is not None and path.exists():
        yaml = YAML(typ="safe")
        with path.open() as f:
            data = yaml.load(f) or {}
    return PorterConfig.from_dict(data).with_env_overrides()
