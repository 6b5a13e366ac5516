"""
Assembly heuristics as ordered, independently testable rules.

The backend reports identifiers in several inconsistent formats, so no single
comparison is reliable. Each heuristic is one small rule class; the assembler
walks the rule lists in order.

- Exclusion rules: does this record belong to the target function itself?
- Parent rules: which already-known node is this node's lexical parent?
- Graft rules: should this root move under a newly resolved ancestor?
"""

from abc import ABC, abstractmethod
from typing import Container, List, Optional, Protocol

from ..config import GLOBAL_SCOPE_MARKER
from ..core.types import AncestorInfo, DependencyNode, RawDependencyRecord, TargetEntity
from .names import is_qualified, last_segment, parent_prefix, parent_segment, strip_hash_qualifier


class NamedEntity(Protocol):
    """The node fields parent rules look at."""
    name: str
    origin_id: Optional[str]
    defining_name: Optional[str]


# --- Target exclusion ---

class ExclusionRule(ABC):
    """Decides whether a record is defined inside the target function."""

    @abstractmethod
    def excludes(self, record: RawDependencyRecord, target: TargetEntity) -> bool:
        pass

    @abstractmethod
    def get_name(self) -> str:
        pass


class SameNameRule(ExclusionRule):
    def get_name(self) -> str:
        return "SameNameRule"

    def excludes(self, record: RawDependencyRecord, target: TargetEntity) -> bool:
        return record.defining_node_name == target.name


class TargetLastSegmentRule(ExclusionRule):
    """Compare against the function name taken from a qualified target id."""

    def get_name(self) -> str:
        return "TargetLastSegmentRule"

    def excludes(self, record: RawDependencyRecord, target: TargetEntity) -> bool:
        if is_qualified(target.origin_id):
            short_name = last_segment(target.origin_id)
        else:
            short_name = target.name
        return bool(short_name) and record.defining_node_name == short_name


class ContainsTargetIdRule(ExclusionRule):
    def get_name(self) -> str:
        return "ContainsTargetIdRule"

    def excludes(self, record: RawDependencyRecord, target: TargetEntity) -> bool:
        if not target.origin_id or not record.defining_node_name:
            return False
        return target.origin_id in record.defining_node_name


class QualifiedLastSegmentRule(ExclusionRule):
    """Both ids qualified and the defining name is the target's last segment."""

    def get_name(self) -> str:
        return "QualifiedLastSegmentRule"

    def excludes(self, record: RawDependencyRecord, target: TargetEntity) -> bool:
        if not record.defining_node_name:
            return False
        if not (is_qualified(target.origin_id) and is_qualified(record.node_id)):
            return False
        return record.defining_node_name == last_segment(target.origin_id)


# --- Parent resolution ---

class ParentRule(ABC):
    """Proposes the name of a node's parent among the known names."""

    @abstractmethod
    def find_parent(self, node: NamedEntity, known: Container[str]) -> Optional[str]:
        pass

    @abstractmethod
    def get_name(self) -> str:
        pass


class DefiningNameRule(ParentRule):
    def get_name(self) -> str:
        return "DefiningNameRule"

    def find_parent(self, node: NamedEntity, known: Container[str]) -> Optional[str]:
        candidate = node.defining_name
        if candidate and candidate != node.name and candidate in known:
            return candidate
        return None


class QualifiedIdRule(ParentRule):
    """The second-to-last segment of a qualified backend id names the parent."""

    def get_name(self) -> str:
        return "QualifiedIdRule"

    @staticmethod
    def candidate(node: NamedEntity) -> Optional[str]:
        if not node.origin_id:
            return None
        segment = parent_segment(node.origin_id)
        if not segment or segment == node.name or segment == GLOBAL_SCOPE_MARKER:
            return None
        return segment

    def find_parent(self, node: NamedEntity, known: Container[str]) -> Optional[str]:
        candidate = self.candidate(node)
        if candidate and candidate in known:
            return candidate
        return None


# --- Grafting ---

class GraftRule(ABC):
    """Decides whether an existing root belongs under a resolved ancestor."""

    @abstractmethod
    def adopts(self, root: DependencyNode, info: AncestorInfo) -> bool:
        pass

    @abstractmethod
    def get_name(self) -> str:
        pass


class RawDefiningNameRule(GraftRule):
    def get_name(self) -> str:
        return "RawDefiningNameRule"

    def adopts(self, root: DependencyNode, info: AncestorInfo) -> bool:
        return root.raw_defining_name is not None and root.raw_defining_name == info.name


class NormalizedDefiningNameRule(GraftRule):
    def get_name(self) -> str:
        return "NormalizedDefiningNameRule"

    def adopts(self, root: DependencyNode, info: AncestorInfo) -> bool:
        return root.defining_name is not None and root.defining_name == strip_hash_qualifier(info.name)


class OriginPrefixRule(GraftRule):
    """The ancestor was requested by the root's own qualified-id prefix."""

    def get_name(self) -> str:
        return "OriginPrefixRule"

    def adopts(self, root: DependencyNode, info: AncestorInfo) -> bool:
        if not root.origin_id:
            return False
        return parent_prefix(root.origin_id) == info.name


EXCLUSION_RULES: List[ExclusionRule] = [
    SameNameRule(),
    TargetLastSegmentRule(),
    ContainsTargetIdRule(),
    QualifiedLastSegmentRule(),
]

PARENT_RULES: List[ParentRule] = [
    DefiningNameRule(),
    QualifiedIdRule(),
]

GRAFT_RULES: List[GraftRule] = [
    RawDefiningNameRule(),
    NormalizedDefiningNameRule(),
    OriginPrefixRule(),
]
