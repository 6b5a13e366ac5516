"""
Dependency Assembler.

Rebuilds a forest of code entities from the flat, noisy record list the
backend returns for one target function:

1. Target exclusion: drop files and anything defined inside the target.
2. Node creation: normalize names, first-seen record owns each name, later
   duplicates only backfill missing location and origin id.
3. Parent links: ordered parent rules; unknown parents are collected as
   missing ancestors to resolve later.
4. Root collection: every node that did not get a parent, in record order.

`graft_ancestor` applies one resolved ancestor to an existing forest without
re-running the passes.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from ..config import GLOBAL_SCOPE_MARKER
from ..core.forest import contains_name, iter_nodes
from ..core.types import (
    AncestorInfo,
    DependencyNode,
    Forest,
    NodeKind,
    RawDependencyRecord,
    SourceLocation,
    Strategy,
    TargetEntity,
    new_node_id,
)
from .names import normalize_optional, parent_prefix, strip_hash_qualifier
from .rules import (
    EXCLUSION_RULES,
    GRAFT_RULES,
    PARENT_RULES,
    ExclusionRule,
    GraftRule,
    ParentRule,
    QualifiedIdRule,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssemblyResult:
    """
    Output of one assembly pass.

    Attributes:
        forest: Root nodes in record order.
        missing_ancestors: Names to resolve, in first-requested order.
    """
    forest: Forest
    missing_ancestors: Tuple[str, ...] = ()


@dataclass(eq=False)
class _Draft:
    """Mutable node used only while a single pass builds the tree."""
    name: str
    kind: NodeKind
    strategy: Strategy
    location: Optional[SourceLocation]
    origin_id: Optional[str]
    defining_name: Optional[str]
    raw_defining_name: Optional[str]
    id: str = field(default_factory=new_node_id)
    parent: Optional["_Draft"] = None
    children: List["_Draft"] = field(default_factory=list)

    def backfill(self, record: RawDependencyRecord) -> None:
        """
        Fill gaps from a later duplicate of the same name.

        A location is only ever taken whole from one record, so a file path
        is never paired with another record's lines.
        """
        location = record.location
        if location is not None:
            if self.location is None:
                self.location = location
            elif not self.location.has_lines and location.has_lines:
                self.location = location
        if self.origin_id is None:
            self.origin_id = record.node_id

    def is_descendant_of(self, other: "_Draft") -> bool:
        """True if `other` is this draft or one of its ancestors."""
        current: Optional[_Draft] = self
        while current is not None:
            if current is other:
                return True
            current = current.parent
        return False

    def freeze(self) -> DependencyNode:
        return DependencyNode(
            id=self.id,
            name=self.name,
            kind=self.kind,
            strategy=self.strategy,
            location=self.location,
            origin_id=self.origin_id,
            defining_name=self.defining_name,
            raw_defining_name=self.raw_defining_name,
            children=tuple(child.freeze() for child in self.children),
        )


class _MissingAncestors:
    """Insertion-ordered set of ancestor names to request."""

    def __init__(self):
        self._names: Dict[str, None] = {}

    def add(self, name: Optional[str]) -> None:
        if name and name != GLOBAL_SCOPE_MARKER and name not in self._names:
            self._names[name] = None

    def as_tuple(self) -> Tuple[str, ...]:
        return tuple(self._names)


class DependencyAssembler:
    """
    Builds dependency forests from raw backend records.

    `assemble` is pure: it never sends requests. Missing ancestors are
    returned for the caller to resolve.
    """

    def __init__(
        self,
        exclusion_rules: Optional[Sequence[ExclusionRule]] = None,
        parent_rules: Optional[Sequence[ParentRule]] = None,
        graft_rules: Optional[Sequence[GraftRule]] = None,
    ):
        self.exclusion_rules = list(exclusion_rules if exclusion_rules is not None else EXCLUSION_RULES)
        self.parent_rules = list(parent_rules if parent_rules is not None else PARENT_RULES)
        self.graft_rules = list(graft_rules if graft_rules is not None else GRAFT_RULES)

    def assemble(
        self,
        target: TargetEntity,
        records: Sequence[RawDependencyRecord],
        default_strategy: Strategy = Strategy.MOCK,
    ) -> AssemblyResult:
        """
        Run passes 1-4 over one record batch.

        Args:
            target: The function whose dependencies these are.
            records: Decoded records in backend order.
            default_strategy: Strategy for records that do not name one.

        Returns:
            AssemblyResult: The forest plus the ancestors still to resolve.
        """
        kept = [r for r in records if not self._is_excluded(r, target)]
        if len(kept) != len(records):
            logger.debug(f"Excluded {len(records) - len(kept)} record(s) for target '{target.name}'")

        drafts = self._create_nodes(kept, default_strategy)
        missing = self._link_parents(drafts)

        roots = tuple(draft.freeze() for draft in drafts.values() if draft.parent is None)
        logger.info(
            f"Assembled {len(drafts)} node(s) into {len(roots)} root(s) for '{target.name}'; "
            f"{len(missing)} ancestor(s) unresolved"
        )
        return AssemblyResult(forest=roots, missing_ancestors=missing)

    # --- Pass 1 ---

    def _is_excluded(self, record: RawDependencyRecord, target: TargetEntity) -> bool:
        if record.type and record.type.lower() == "file":
            return True
        for rule in self.exclusion_rules:
            if rule.excludes(record, target):
                logger.debug(f"{rule.get_name()} excluded '{record.name}'")
                return True
        return False

    # --- Pass 2 ---

    def _create_nodes(
        self, records: Sequence[RawDependencyRecord], default_strategy: Strategy
    ) -> Dict[str, _Draft]:
        by_name: Dict[str, _Draft] = {}
        for record in records:
            name = strip_hash_qualifier(record.name)
            existing = by_name.get(name)
            if existing is not None:
                existing.backfill(record)
                continue

            by_name[name] = _Draft(
                name=name,
                kind=NodeKind.parse(record.type),
                strategy=Strategy.parse(record.implementation, default_strategy),
                location=record.location,
                origin_id=record.node_id,
                defining_name=normalize_optional(record.defining_node_name),
                raw_defining_name=record.defining_node_name,
            )
        return by_name

    # --- Pass 3 ---

    def _link_parents(self, by_name: Dict[str, _Draft]) -> Tuple[str, ...]:
        missing = _MissingAncestors()

        for draft in list(by_name.values()):
            parent_name = None
            for rule in self.parent_rules:
                parent_name = rule.find_parent(draft, by_name)
                if parent_name is not None:
                    break

            if parent_name is not None:
                self._attach(draft, by_name[parent_name])
                continue

            if draft.defining_name and draft.defining_name not in by_name:
                missing.add(draft.raw_defining_name)
            candidate = QualifiedIdRule.candidate(draft)
            if candidate:
                missing.add(parent_prefix(draft.origin_id))

        return missing.as_tuple()

    def _attach(self, child: _Draft, parent: _Draft) -> None:
        if parent.is_descendant_of(child):
            logger.debug(f"Refusing cyclic parent link '{child.name}' -> '{parent.name}'")
            return
        child.parent = parent
        parent.children.append(child)

    # --- Grafting ---

    def graft_ancestor(self, forest: Forest, info: AncestorInfo) -> Optional[Forest]:
        """
        Insert a resolved ancestor as a new root and adopt its orphaned children.

        Returns:
            Optional[Forest]: The grafted forest, or None when the answer is
            discarded (not a class, or already present).
        """
        if info.kind is not NodeKind.CLASS:
            logger.debug(f"Discarding ancestor '{info.name}' of kind {info.kind.value}")
            return None

        name = strip_hash_qualifier(info.name)
        known_ids = {info.name, info.node_id} - {None}
        if contains_name(forest, name) or any(
            node.origin_id in known_ids for node in iter_nodes(forest)
        ):
            logger.debug(f"Ancestor '{name}' already present; not grafting")
            return None

        adopted: List[DependencyNode] = []
        position = len(forest)
        remaining: List[DependencyNode] = []
        for root in forest:
            if any(rule.adopts(root, info) for rule in self.graft_rules):
                if not adopted:
                    position = len(remaining)
                adopted.append(root)
            else:
                remaining.append(root)

        ancestor = DependencyNode(
            name=name,
            kind=NodeKind.CLASS,
            strategy=Strategy.MOCK,
            location=info.location,
            origin_id=info.node_id,
            children=tuple(adopted),
        )
        remaining.insert(position, ancestor)
        logger.info(f"Grafted ancestor '{name}' with {len(adopted)} child(ren)")
        return tuple(remaining)


_default_assembler = DependencyAssembler()


def graft_ancestor(forest: Forest, info: AncestorInfo) -> Optional[Forest]:
    """Module-level convenience using the default graft rules."""
    return _default_assembler.graft_ancestor(forest, info)
