"""
Core data types, errors and the persistent forest operations.
"""

from .errors import (
    BackendError,
    BrokerClosedError,
    ConfigError,
    PromptGenerationError,
    RemoteHandlerError,
    RequestTimeoutError,
    SessionStateError,
    StubtreeError,
)
from .types import (
    AncestorInfo,
    DependencyNode,
    Forest,
    HighlightRequest,
    NodeKind,
    PromptRequest,
    PromptResponse,
    RawDependencyRecord,
    RecordSource,
    SourceLocation,
    Strategy,
    TargetEntity,
)

__all__ = [
    "AncestorInfo",
    "BackendError",
    "BrokerClosedError",
    "ConfigError",
    "DependencyNode",
    "Forest",
    "HighlightRequest",
    "NodeKind",
    "PromptGenerationError",
    "PromptRequest",
    "PromptResponse",
    "RawDependencyRecord",
    "RecordSource",
    "RemoteHandlerError",
    "RequestTimeoutError",
    "SessionStateError",
    "SourceLocation",
    "Strategy",
    "StubtreeError",
    "TargetEntity",
]
