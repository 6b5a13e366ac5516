"""
Assemble Command - Build and display a dependency forest from raw records.

Usage:
    stubtree assemble records.json --target handle_request
    stubtree assemble records.json --target handle_request --snapshot backend.json
"""

import asyncio
import json
from typing import Any, List, Optional, Tuple

import click
from rich.console import Console
from rich.markup import escape
from rich.tree import Tree

from ...assembly.assembler import DependencyAssembler
from ...assembly.decoding import decode_records
from ...broker.broker import CorrelationBroker
from ...broker.channel import create_channel_pair
from ...config import StubtreeConfig
from ...core.errors import BackendError
from ...core.forest import forest_snapshot
from ...core.types import DependencyNode, Forest, RecordSource, TargetEntity
from ...host.backend import SnapshotBackend
from ...host.handlers import HostHandlers
from ...session import SidebarSession
from ..utils import echo_error, echo_warning, load_json, load_settings

console = Console()

STRATEGY_STYLES = {"Mock": "yellow", "UseReal": "green", "Fake": "magenta"}


@click.command()
@click.argument("records_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--target", "-t", "target_name", required=True, help="Target function name")
@click.option("--target-id", default=None, help="Backend id of the target function")
@click.option("--live", is_flag=True, help="Treat records as a live fetch (default strategy UseReal)")
@click.option("--snapshot", "-s", "snapshot_file", type=click.Path(exists=True, dir_okay=False),
              default=None, help="Backend snapshot used to resolve missing ancestors")
@click.option("--config", "config_file", default=None, help="Path to config.yaml")
@click.option("--json", "as_json", is_flag=True, help="Print the forest as JSON")
def assemble(
    records_file: str,
    target_name: str,
    target_id: Optional[str],
    live: bool,
    snapshot_file: Optional[str],
    config_file: Optional[str],
    as_json: bool,
) -> None:
    """
    Assemble RECORDS_FILE into a dependency forest.

    The file holds a list of raw dependency records, or an object with a
    "dependencies" list.
    """
    config = load_settings(config_file)

    data = load_json(records_file)
    if data is None:
        raise SystemExit(1)
    raw_records = data.get("dependencies") if isinstance(data, dict) else data

    backend = None
    if snapshot_file:
        try:
            backend = SnapshotBackend.from_file(snapshot_file)
        except BackendError as e:
            echo_error(str(e))
            raise SystemExit(1)

    target = TargetEntity(name=target_name, origin_id=target_id)
    source = RecordSource.LIVE_FETCH if live else RecordSource.QUERY
    forest, missing = asyncio.run(_assemble(target, raw_records, source, backend, config))

    if as_json:
        click.echo(json.dumps(forest_snapshot(forest), indent=2))
        return

    console.print(render_forest(target, forest))
    if missing:
        label = "Requested ancestors" if backend else "Unresolved ancestors"
        echo_warning(f"{label} ({len(missing)}):")
        for name in missing:
            click.echo(f"   • {name}")


async def _assemble(
    target: TargetEntity,
    raw_records: Any,
    source: RecordSource,
    backend: Optional[SnapshotBackend],
    config: StubtreeConfig,
) -> Tuple[Forest, Tuple[str, ...]]:
    if backend is None:
        result = DependencyAssembler().assemble(
            target, decode_records(raw_records), source.default_strategy
        )
        return result.forest, result.missing_ancestors

    # Both ends in-process: the session resolves ancestors against the snapshot.
    ui_end, host_end = create_channel_pair()
    host = CorrelationBroker(host_end, default_timeout_ms=config.request_timeout_ms, name="host")
    HostHandlers(host, backend).register_all()
    try:
        async with SidebarSession(ui_end, config) as session:
            result = await session.load_records(target, raw_records, source)
            await session.enricher.wait()
            return session.forest, result.missing_ancestors
    finally:
        host.dispose()


def render_forest(target: TargetEntity, forest: Forest) -> Tree:
    tree = Tree(f"🎯 [bold]{escape(target.name)}[/bold]")
    if not forest:
        tree.add("[dim]No dependencies[/dim]")
        return tree

    stack: List[Tuple[Tree, DependencyNode]] = [(tree, node) for node in reversed(forest)]
    while stack:
        parent, node = stack.pop()
        branch = parent.add(_label(node))
        stack.extend((branch, child) for child in reversed(node.children))
    return tree


def _label(node: DependencyNode) -> str:
    style = STRATEGY_STYLES.get(node.strategy.value, "white")
    label = f"[cyan]{escape(node.name)}[/cyan] [dim]({node.kind.value})[/dim] [{style}]{node.strategy.value}[/{style}]"
    if node.location:
        where = node.location.file_path
        if node.location.start_line is not None:
            where += f":{node.location.start_line}"
        label += f" [dim]{escape(where)}[/dim]"
    return label
