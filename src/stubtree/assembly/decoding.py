"""
Tolerant decoding of backend payloads.

This is the one place where untyped data from the analysis backend meets the
strict models. Absent fields take explicit defaults; a record that cannot be
used at all becomes an `Err` so the rest of its batch still loads.
"""

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from pydantic import ValidationError

from ..core.result import Err, Ok, Result, partition
from ..core.types import AncestorInfo, RawDependencyRecord, TargetEntity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecodeError:
    """Why a value could not be decoded."""
    reason: str
    value: Any = None

    def __str__(self) -> str:
        return self.reason


def decode_record(raw: Any) -> Result[RawDependencyRecord, DecodeError]:
    if isinstance(raw, RawDependencyRecord):
        return Ok(raw)
    if not isinstance(raw, dict):
        return Err(DecodeError(f"expected a mapping, got {type(raw).__name__}", raw))
    try:
        return Ok(RawDependencyRecord.model_validate(raw))
    except ValidationError as e:
        fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err.get("loc"))
        return Err(DecodeError(f"invalid record ({fields or 'unknown field'})", raw))


def decode_records(raw_records: Any) -> List[RawDependencyRecord]:
    """
    Decode a batch, skipping (and logging) anything unusable.

    A non-list payload is treated as an empty batch.
    """
    if raw_records is None:
        return []
    if not isinstance(raw_records, (list, tuple)):
        logger.warning(f"Expected a list of dependency records, got {type(raw_records).__name__}")
        return []

    decoded, errors = partition(decode_record(raw) for raw in raw_records)
    for error in errors:
        logger.warning(f"Skipping dependency record: {error.reason}: {error.value!r}")
    return decoded


def decode_ancestor(raw: Any) -> Optional[AncestorInfo]:
    """Decode an ancestor-resolution answer; `None` and junk mean unresolved."""
    if raw is None:
        return None
    if isinstance(raw, AncestorInfo):
        return raw
    if not isinstance(raw, dict):
        logger.warning(f"Ignoring ancestor answer of type {type(raw).__name__}")
        return None
    try:
        return AncestorInfo.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"Ignoring malformed ancestor answer: {e.error_count()} error(s)")
        return None


def decode_target(raw: Any) -> Optional[TargetEntity]:
    if isinstance(raw, TargetEntity):
        return raw
    if not isinstance(raw, dict):
        return None
    try:
        return TargetEntity.model_validate(raw)
    except ValidationError:
        logger.warning(f"Ignoring malformed target entity: {raw!r}")
        return None
