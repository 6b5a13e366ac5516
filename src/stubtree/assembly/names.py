"""
Name normalization for backend identifiers.

Backend ids look like "210136012.obKPyA==.ServiceManager.start": a numeric
prefix, a hash qualifier terminated by "==.", then the dotted path.
"""

from typing import List, Optional

from ..config import HASH_QUALIFIER_DELIMITER, MIN_QUALIFIED_SEGMENTS


def strip_hash_qualifier(name: str) -> str:
    """Keep everything after the last hash-qualifier delimiter."""
    return name.rsplit(HASH_QUALIFIER_DELIMITER, 1)[-1]


def normalize_optional(name: Optional[str]) -> Optional[str]:
    if name is None:
        return None
    return strip_hash_qualifier(name)


def split_segments(identifier: str) -> List[str]:
    return identifier.split(".")


def is_qualified(identifier: Optional[str]) -> bool:
    """True for ids with enough segments to carry parent information."""
    return bool(identifier) and len(split_segments(identifier)) >= MIN_QUALIFIED_SEGMENTS


def last_segment(identifier: str) -> str:
    return split_segments(identifier)[-1]


def parent_segment(identifier: str) -> Optional[str]:
    """Second-to-last segment of a qualified id, else None."""
    if not is_qualified(identifier):
        return None
    return split_segments(identifier)[-2]


def parent_prefix(identifier: str) -> Optional[str]:
    """All segments except the last, for qualified ids only."""
    if not is_qualified(identifier):
        return None
    return ".".join(split_segments(identifier)[:-1])
