"""
Serve Command - Run the host side as a language server on stdio.
"""

from typing import Optional

import click

from ...core.errors import BackendError
from ...host.backend import SnapshotBackend
from ...lsp.server import serve as serve_stdio
from ..utils import echo_error, load_settings


@click.command()
@click.option("--snapshot", "-s", "snapshot_file", type=click.Path(exists=True, dir_okay=False),
              default=None, help="Backend snapshot to answer queries from")
@click.option("--config", "config_file", default=None, help="Path to config.yaml")
def serve(snapshot_file: Optional[str], config_file: Optional[str]) -> None:
    """
    Start the stubtree host server.

    Speaks LSP on stdin/stdout; sidebar envelopes travel as custom
    notifications. Without a snapshot every backend query comes back empty.
    """
    config = load_settings(config_file)

    if snapshot_file:
        try:
            backend = SnapshotBackend.from_file(snapshot_file)
        except BackendError as e:
            echo_error(str(e))
            raise SystemExit(1)
    else:
        backend = SnapshotBackend()

    serve_stdio(backend, config)
