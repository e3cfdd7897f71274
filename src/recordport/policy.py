"""Traversal policy: which relationships an export follows.

A policy holds three sets of type-qualified fields:

- follow set: outward reference fields (many-to-one) to fetch the targets of
- child-follow set: child relationships to pull in, keyed by the child's
  owning foreign-key field
- omit set: fields left out of the export entirely

Omission overrides following. ``omit`` removes the field from both follow
sets, and ``follow``/``follow_child`` ignore omitted fields, so the omit set
and the follow sets are disjoint at all times.

The policy can be built by hand, derived from the schema catalog with
``auto`` (replacing all three sets), or derived and then adjusted. It is not
mutated during traversal.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, NamedTuple

from recordport.config import PorterConfig
from recordport.observability.logging import get_logger

if TYPE_CHECKING:
    from recordport.schema import ChildRelationship, SchemaOracle

log = get_logger(__name__)

_EXPAND = "expand"
_CHILD = "child"
_REFERENCE = "reference"


class FieldRef(NamedTuple):
    """A field qualified by the type that declares it."""

    type_name: str
    field_name: str

    def __str__(self) -> str:
        return f"{self.type_name}.{self.field_name}"


class _Frame(NamedTuple):
    """One auto-derive work item.

    ``expand`` visits *type_name*; ``child`` marks the child relationship
    owned by *field_name* and then expands the child type; ``reference``
    marks *type_name*.*field_name* and then expands *target*. Depths are
    those of the type expanded next.
    """

    kind: str
    type_name: str
    outward: int
    inward: int
    search_children: bool = False
    field_name: str = ""
    target: str = ""


@dataclass
class TraversalPolicy:
    """Mutable export configuration. Mutators return ``self`` so calls chain."""

    follow_set: set[FieldRef] = field(default_factory=set)
    child_follow_set: set[FieldRef] = field(default_factory=set)
    omit_set: set[FieldRef] = field(default_factory=set)

    def __post_init__(self) -> None:
        self.follow_set = {FieldRef(*ref) for ref in self.follow_set}
        self.child_follow_set = {FieldRef(*ref) for ref in self.child_follow_set}
        self.omit_set = {FieldRef(*ref) for ref in self.omit_set}
        self.follow_set -= self.omit_set
        self.child_follow_set -= self.omit_set

    @classmethod
    def derive(
        cls,
        oracle: SchemaOracle,
        root_type: str,
        config: PorterConfig | None = None,
    ) -> TraversalPolicy:
        """Create a policy auto-derived for *root_type*."""
        return cls().auto(oracle, root_type, config)

    # -- Queries ---------------------------------------------------------------

    def follows(self, type_name: str, field_name: str) -> bool:
        return FieldRef(type_name, field_name) in self.follow_set

    def follows_child(self, child_type: str, field_name: str) -> bool:
        return FieldRef(child_type, field_name) in self.child_follow_set

    def omits(self, type_name: str, field_name: str) -> bool:
        return FieldRef(type_name, field_name) in self.omit_set

    # -- Mutators --------------------------------------------------------------

    def follow(self, type_name: str, field_name: str) -> TraversalPolicy:
        """Follow an outward reference field. No effect if the field is omitted."""
        ref = FieldRef(type_name, field_name)
        if ref in self.omit_set:
            log.warning("follow_ignored_omitted", field=str(ref))
            return self
        self.follow_set.add(ref)
        return self

    def unfollow(self, type_name: str, field_name: str) -> TraversalPolicy:
        self.follow_set.discard(FieldRef(type_name, field_name))
        return self

    def follow_child(self, child_type: str, field_name: str) -> TraversalPolicy:
        """Follow a child relationship, named by the child's owning field.

        No effect if the field is omitted.
        """
        ref = FieldRef(child_type, field_name)
        if ref in self.omit_set:
            log.warning("follow_ignored_omitted", field=str(ref))
            return self
        self.child_follow_set.add(ref)
        return self

    def unfollow_child(self, child_type: str, field_name: str) -> TraversalPolicy:
        self.child_follow_set.discard(FieldRef(child_type, field_name))
        return self

    def omit(self, type_name: str, field_name: str) -> TraversalPolicy:
        """Leave a field out of the export; also stops following it."""
        ref = FieldRef(type_name, field_name)
        self.omit_set.add(ref)
        self.follow_set.discard(ref)
        self.child_follow_set.discard(ref)
        return self

    def include(self, type_name: str, field_name: str) -> TraversalPolicy:
        """Undo ``omit``. Does not re-add the field to any follow set."""
        self.omit_set.discard(FieldRef(type_name, field_name))
        return self

    # -- Auto-derive -----------------------------------------------------------

    def auto(
        self,
        oracle: SchemaOracle,
        root_type: str,
        config: PorterConfig | None = None,
    ) -> TraversalPolicy:
        """Replace all three sets with a policy derived from the schema.

        Walks the schema depth-first from *root_type*. Owned (cascade) child
        relationships are followed from the root and from its descendants;
        plain references are followed from every expanded type, but a type
        reached through a reference does not pull in its own children.
        Every type is expanded at most once. Types beyond the configured
        outward or inward depth are not expanded.

        Args:
            oracle: Schema catalog to derive from.
            root_type: Type of the anchor records.
            config: Depth caps and skip-lists; defaults apply when None.

        Returns:
            This policy.
        """
        config = config or PorterConfig()
        follow: set[FieldRef] = set()
        child_follow: set[FieldRef] = set()
        visited: set[str] = set()

        # LIFO worklist in recursive order: a type's child subtrees are fully
        # expanded before its reference fields are examined.
        stack: list[_Frame] = [_Frame(_EXPAND, root_type, 0, 0, search_children=True)]
        while stack:
            frame = stack.pop()
            if frame.kind == _CHILD:
                child_follow.add(FieldRef(frame.type_name, frame.field_name))
                stack.append(frame._replace(kind=_EXPAND))
                continue
            if frame.kind == _REFERENCE:
                ref = FieldRef(frame.type_name, frame.field_name)
                if ref in child_follow or frame.field_name in config.reference_skip_list:
                    continue
                follow.add(ref)
                stack.append(_Frame(_EXPAND, frame.target, frame.outward, frame.inward))
                continue

            if frame.type_name in visited:
                continue
            if (
                frame.outward > config.max_derive_outward_depth
                or frame.inward > config.max_derive_inward_depth
            ):
                continue
            visited.add(frame.type_name)
            descriptor = oracle.describe_type(frame.type_name)

            pending: list[_Frame] = []
            if frame.search_children:
                for rel in descriptor.child_relationships:
                    if not _is_followable_child(rel, config):
                        continue
                    pending.append(
                        _Frame(
                            _CHILD,
                            rel.child_type,
                            frame.outward,
                            frame.inward + 1,
                            search_children=True,
                            field_name=rel.field,
                        )
                    )
            for fd in descriptor.reference_fields:
                if fd.reference_target is None:
                    continue
                pending.append(
                    _Frame(
                        _REFERENCE,
                        frame.type_name,
                        frame.outward + 1,
                        frame.inward,
                        field_name=fd.name,
                        target=fd.reference_target,
                    )
                )
            stack.extend(reversed(pending))

        self.follow_set = follow
        self.child_follow_set = child_follow
        self.omit_set = set()
        log.debug(
            "policy_derived",
            root_type=root_type,
            follow=sorted(str(r) for r in follow),
            follow_children=sorted(str(r) for r in child_follow),
            types=len(visited),
        )
        return self


def _is_followable_child(rel: ChildRelationship, config: PorterConfig) -> bool:
    if not rel.field:
        return False
    if rel.name in config.child_relationship_skip_list:
        return False
    if rel.child_type.endswith(config.child_type_skip_suffixes):
        return False
    return rel.cascade
