"""
Global Configuration and Defaults.

This module centralizes the protocol constants shared by both sides of the
message channel (endpoint names, push-notification tags, identifier markers)
and the user-tunable settings loaded from `.stubtree/config.yaml`.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from .core.errors import ConfigError

logger = logging.getLogger(__name__)

# --- Transport ---
# Requests with no matching response within this window reject with a timeout
DEFAULT_REQUEST_TIMEOUT_MS = 10_000

# Custom JSON-RPC notification carrying channel envelopes over LSP
DEFAULT_LSP_METHOD = "stubtree/message"

# --- Identifier Heuristics ---
# Backend ids embed a disambiguation segment such as "210136012.obKPyA==.Service"
HASH_QUALIFIER_DELIMITER = "==."

# Backend marker for "no enclosing scope"
GLOBAL_SCOPE_MARKER = "<global>"

# Ids with fewer segments carry no usable parent information
MIN_QUALIFIED_SEGMENTS = 3

# --- Endpoints (request/response) ---
RESOLVE_ANCESTOR_ENDPOINT = "resolve-ancestor"
GET_DEPENDENCIES_ENDPOINT = "get-dependencies"
GENERATE_PROMPT_ENDPOINT = "generate-prompt"
DISPLAY_NODE_ENDPOINT = "display-node"

# --- Push notification tags ---
HIGHLIGHT_MESSAGE = "highlightDependency"
DEPENDENCIES_MESSAGE = "functionDependencies"
DEPENDENCIES_ERROR_MESSAGE = "functionDependenciesError"
CONNECTION_STATUS_MESSAGE = "connectionStatus"

# --- Highlighting ---
# Best-effort range used when a dependency has no line information
DEFAULT_HIGHLIGHT_START_LINE = 0
DEFAULT_HIGHLIGHT_END_LINE = 10

DEFAULT_CONFIG_PATH = Path(".stubtree/config.yaml")

ENV_OVERRIDES: Dict[str, str] = {
    "STUBTREE_REQUEST_TIMEOUT_MS": "request_timeout_ms",
    "STUBTREE_ANCESTOR_TIMEOUT_MS": "ancestor_timeout_ms",
    "STUBTREE_LOG_LEVEL": "log_level",
}


class StubtreeConfig(BaseModel):
    """
    User-tunable settings.

    Attributes:
        request_timeout_ms: Deadline for ordinary broker requests.
        ancestor_timeout_ms: Deadline for ancestor-resolution round-trips.
        log_level: Root logging level for the CLI and LSP entry points.
        lsp_method: JSON-RPC method name used to carry channel envelopes.
    """

    request_timeout_ms: int = Field(default=DEFAULT_REQUEST_TIMEOUT_MS, gt=0)
    ancestor_timeout_ms: int = Field(default=DEFAULT_REQUEST_TIMEOUT_MS, gt=0)
    log_level: str = "INFO"
    lsp_method: str = DEFAULT_LSP_METHOD


def load_config(path: Optional[Path] = None) -> StubtreeConfig:
    """
    Load settings from YAML, then apply environment overrides.

    A missing file is not an error; defaults are used. Environment variables
    always win over file values.

    Args:
        path: Config file location. Defaults to `.stubtree/config.yaml`.

    Returns:
        StubtreeConfig: The validated settings.

    Raises:
        ConfigError: If the file is unreadable or a value fails validation.
    """
    config_path = path or DEFAULT_CONFIG_PATH
    data: Dict[str, Any] = {}

    if config_path.exists():
        try:
            with open(config_path, "r") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to read {config_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"{config_path} must contain a mapping, got {type(data).__name__}")

        logger.debug(f"Loaded config from {config_path}")

    for env_name, field_name in ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            data[field_name] = value

    try:
        return StubtreeConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
