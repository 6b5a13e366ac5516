"""
CLI Utilities - Shared helpers for command output and input loading.
"""

import json
import logging
from pathlib import Path
from typing import Any, Optional

import click

from ..config import StubtreeConfig, load_config
from ..core.errors import ConfigError


def echo_error(message: str) -> None:
    """Print an error message with a red cross to stderr."""
    click.echo(click.style(f"❌ {message}", fg="red"), err=True)


def echo_warning(message: str) -> None:
    click.echo(click.style(f"⚠️  {message}", fg="yellow"))


def load_settings(config_path: Optional[str]) -> StubtreeConfig:
    """
    Load configuration and set up logging for a command.

    Exits with status 1 on an invalid configuration.
    """
    try:
        config = load_config(Path(config_path) if config_path else None)
    except ConfigError as e:
        echo_error(str(e))
        raise SystemExit(1)

    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    return config


def load_json(path: str) -> Optional[Any]:
    """Read a JSON file, printing an error and returning None on failure."""
    try:
        with open(path, "r") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        echo_error(f"Invalid JSON in {path}: {e}")
    except OSError as e:
        echo_error(f"Cannot read {path}: {e}")
    return None
