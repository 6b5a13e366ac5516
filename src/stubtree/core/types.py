"""
Core type definitions for stubtree.

Everything that crosses the message channel or lives in the dependency forest
is a pydantic model. Forest nodes are frozen so that persistent updates can
share unchanged subtrees by reference.

Wire names follow the editor UI's camelCase conventions (`filePath`,
`startLine`, `nodeId`, ...); Python code uses the snake_case field names.
"""

import uuid
from enum import StrEnum
from typing import Annotated, Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator


def new_node_id() -> str:
    """Generate a fresh process-local node identifier."""
    return str(uuid.uuid4())


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _lenient_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


OptionalText = Annotated[Optional[str], BeforeValidator(_blank_to_none)]
OptionalLine = Annotated[Optional[int], BeforeValidator(_lenient_int)]


class NodeKind(StrEnum):
    """Categories of code entities shown in the dependency tree."""
    FILE = "File"
    CLASS = "Class"
    FUNCTION = "Function"
    METHOD = "Method"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: Any) -> "NodeKind":
        """Case-insensitive lookup; anything unrecognized is UNKNOWN."""
        if isinstance(value, str):
            wanted = value.strip().lower()
            for kind in cls:
                if kind.value.lower() == wanted:
                    return kind
        return cls.UNKNOWN


ParsedKind = Annotated[NodeKind, BeforeValidator(NodeKind.parse)]


class Strategy(StrEnum):
    """How a dependency is provided to the generated test."""
    MOCK = "Mock"
    USE_REAL = "UseReal"
    FAKE = "Fake"

    @classmethod
    def parse(cls, value: Any, default: "Strategy") -> "Strategy":
        """Map any historical UI spelling onto a strategy, else `default`."""
        if isinstance(value, str):
            return STRATEGY_ALIASES.get(value.strip().lower(), default)
        return default


STRATEGY_ALIASES: Dict[str, Strategy] = {
    "mock": Strategy.MOCK,
    "stub": Strategy.MOCK,
    "usereal": Strategy.USE_REAL,
    "real": Strategy.USE_REAL,
    "use real one": Strategy.USE_REAL,
    "fake": Strategy.FAKE,
    "fake object": Strategy.FAKE,
}


class RecordSource(StrEnum):
    """
    Where a batch of raw records came from.

    The two paths carry different strategy defaults for records that do not
    specify one; both are kept as-is.
    """
    QUERY = "query"
    LIVE_FETCH = "live_fetch"

    @property
    def default_strategy(self) -> Strategy:
        if self is RecordSource.LIVE_FETCH:
            return Strategy.USE_REAL
        return Strategy.MOCK


class SourceLocation(BaseModel):
    """Position of an entity in the workspace; lines may be unknown."""
    file_path: str = Field(alias="filePath")
    start_line: Optional[int] = Field(default=None, alias="startLine")
    end_line: Optional[int] = Field(default=None, alias="endLine")

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @property
    def has_lines(self) -> bool:
        return self.start_line is not None


class DependencyNode(BaseModel):
    """
    One code entity in the dependency forest.

    `id` is the stable identity used by every mutation; `origin_id` is the
    backend's own identifier and is only used for backend round-trips.
    `defining_name` and `raw_defining_name` are assembly-time hints and are not
    authoritative once the tree is built.
    """
    id: str = Field(default_factory=new_node_id)
    name: str
    kind: NodeKind = NodeKind.UNKNOWN
    strategy: Strategy = Strategy.MOCK
    location: Optional[SourceLocation] = None
    origin_id: Optional[str] = None
    defining_name: Optional[str] = None
    raw_defining_name: Optional[str] = None
    children: Tuple["DependencyNode", ...] = ()

    model_config = ConfigDict(frozen=True)

    def to_wire(self) -> Dict[str, Any]:
        """Serialize in the flat camelCase shape the UI and prompt builder use."""
        location = self.location
        return {
            "id": self.id,
            "name": self.name,
            "type": self.kind.value,
            "implementation": self.strategy.value,
            "filePath": location.file_path if location else None,
            "startLine": location.start_line if location else None,
            "endLine": location.end_line if location else None,
            "nodeId": self.origin_id,
            "definingNodeName": self.defining_name,
            "children": [child.to_wire() for child in self.children],
        }


Forest = Tuple[DependencyNode, ...]


class TargetEntity(BaseModel):
    """The function whose dependencies are being displayed."""
    name: str = Field(alias="functionName")
    origin_id: OptionalText = Field(default=None, alias="nodeId")
    file_path: OptionalText = Field(default=None, alias="filePath")
    start_line: OptionalLine = Field(default=None, alias="startLine")
    end_line: OptionalLine = Field(default=None, alias="endLine")

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class RawDependencyRecord(BaseModel):
    """
    An unvalidated dependency description from the backend query.

    Only `name` is required. Blank strings and unparseable line numbers are
    treated as absent rather than as errors.
    """
    name: str
    type: OptionalText = None
    implementation: OptionalText = None
    file_path: OptionalText = Field(default=None, alias="filePath")
    start_line: OptionalLine = Field(default=None, alias="startLine")
    end_line: OptionalLine = Field(default=None, alias="endLine")
    node_id: OptionalText = Field(default=None, alias="nodeId")
    defining_node_name: OptionalText = Field(default=None, alias="definingNodeName")
    target_function_name: OptionalText = Field(default=None, alias="targetFunctionName")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("name")
    @classmethod
    def require_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be empty")
        return value

    @property
    def location(self) -> Optional[SourceLocation]:
        if not self.file_path:
            return None
        return SourceLocation(
            file_path=self.file_path,
            start_line=self.start_line,
            end_line=self.end_line,
        )


class AncestorInfo(BaseModel):
    """Answer to an ancestor-resolution request."""
    name: str
    kind: ParsedKind = Field(default=NodeKind.UNKNOWN, alias="type")
    node_id: OptionalText = Field(default=None, alias="nodeId")
    file_path: OptionalText = Field(default=None, alias="filePath")
    start_line: OptionalLine = Field(default=None, alias="startLine")
    end_line: OptionalLine = Field(default=None, alias="endLine")

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    @property
    def location(self) -> Optional[SourceLocation]:
        if not self.file_path:
            return None
        return SourceLocation(
            file_path=self.file_path,
            start_line=self.start_line,
            end_line=self.end_line,
        )

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class HighlightRequest(BaseModel):
    """Ask the editor to reveal an entity; missing lines mean best-effort."""
    name: str
    file_path: str = Field(alias="filePath")
    start_line: OptionalLine = Field(default=None, alias="startLine")
    end_line: OptionalLine = Field(default=None, alias="endLine")

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class PromptRequest(BaseModel):
    """Everything the prompt builder needs to write a test-authoring prompt."""
    target_entity: TargetEntity = Field(alias="targetEntity")
    dependency_forest_snapshot: List[Dict[str, Any]] = Field(
        default_factory=list, alias="dependencyForestSnapshot"
    )
    free_text_instructions: str = Field(default="", alias="freeTextInstructions")
    output_path_hint: OptionalText = Field(default=None, alias="outputPathHint")
    framework_hint: OptionalText = Field(default=None, alias="frameworkHint")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class PromptResponse(BaseModel):
    """Either `prompt` or `error` is set."""
    prompt: Optional[str] = None
    error: Optional[str] = None

    model_config = ConfigDict(extra="ignore")
