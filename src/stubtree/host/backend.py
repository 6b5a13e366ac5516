"""
Analysis backend boundary.

The host talks to the code-analysis backend only through `AnalysisBackend`.
`SnapshotBackend` serves a static JSON snapshot of the backend's answers,
which is enough for demos, the CLI and tests.

Snapshot format:

    {
      "nodes": {"<node id>": {"type": "Class", "filePath": "...", ...}},
      "dependencies": {"<target node id or function name>": [<raw record>, ...]}
    }
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from pydantic import BaseModel, ValidationError

from ..core.errors import BackendError
from ..core.types import TargetEntity

logger = logging.getLogger(__name__)


class AnalysisBackend(Protocol):
    """Query contract of the analysis backend."""

    async def get_node(self, node_id: str) -> Optional[Dict[str, Any]]:
        """Node details by exact id, or None."""
        ...

    async def list_node_ids(self) -> List[str]:
        ...

    async def get_dependencies(self, target: TargetEntity) -> List[Dict[str, Any]]:
        """Raw dependency records for one function."""
        ...


class Snapshot(BaseModel):
    nodes: Dict[str, Dict[str, Any]] = {}
    dependencies: Dict[str, List[Dict[str, Any]]] = {}


class SnapshotBackend:
    """Dict-backed backend loaded from a snapshot file."""

    def __init__(
        self,
        nodes: Optional[Dict[str, Dict[str, Any]]] = None,
        dependencies: Optional[Dict[str, List[Dict[str, Any]]]] = None,
    ):
        self.nodes = dict(nodes or {})
        self.dependencies = dict(dependencies or {})

    @classmethod
    def from_file(cls, path: Path) -> "SnapshotBackend":
        """
        Load a snapshot from JSON.

        Raises:
            BackendError: If the file is unreadable or malformed.
        """
        try:
            with open(path, "r") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise BackendError(f"Failed to read snapshot {path}: {e}") from e

        try:
            snapshot = Snapshot.model_validate(data)
        except ValidationError as e:
            raise BackendError(f"Invalid snapshot {path}: {e.error_count()} error(s)") from e

        logger.info(
            f"Loaded snapshot {path}: {len(snapshot.nodes)} node(s), "
            f"{len(snapshot.dependencies)} dependency list(s)"
        )
        return cls(snapshot.nodes, snapshot.dependencies)

    async def get_node(self, node_id: str) -> Optional[Dict[str, Any]]:
        node = self.nodes.get(node_id)
        if node is None:
            return None
        return {"id": node_id, **node}

    async def list_node_ids(self) -> List[str]:
        return list(self.nodes)

    async def get_dependencies(self, target: TargetEntity) -> List[Dict[str, Any]]:
        for key in (target.origin_id, target.name):
            if key and key in self.dependencies:
                return list(self.dependencies[key])
        return []
