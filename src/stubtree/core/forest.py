"""
Node Mutation Layer.

Persistent operations over a dependency forest. Nodes are frozen, so every
edit rebuilds only the path from the root down to the changed node; all
other subtrees are shared by reference with the previous forest. Callers
holding the old forest never observe the change.

Node identity is the `id` field, never Python object identity.
"""

from typing import Any, Dict, Iterator, List, Optional

from .types import DependencyNode, Forest, Strategy


def iter_nodes(forest: Forest) -> Iterator[DependencyNode]:
    """Yield every node in depth-first pre-order."""
    stack = list(reversed(forest))
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def find_node(forest: Forest, node_id: str) -> Optional[DependencyNode]:
    """Locate a node by id anywhere in the forest."""
    for node in iter_nodes(forest):
        if node.id == node_id:
            return node
    return None


def contains_name(forest: Forest, name: str) -> bool:
    """True if any root or descendant carries this display name."""
    return any(node.name == name for node in iter_nodes(forest))


def _with_strategy(node: DependencyNode, strategy: Strategy) -> DependencyNode:
    children = tuple(_with_strategy(child, strategy) for child in node.children)
    return node.model_copy(update={"strategy": strategy, "children": children})


def _set_in(nodes: Forest, node_id: str, strategy: Strategy) -> Optional[Forest]:
    for i, node in enumerate(nodes):
        if node.id == node_id:
            replaced = _with_strategy(node, strategy)
        else:
            children = _set_in(node.children, node_id, strategy)
            if children is None:
                continue
            replaced = node.model_copy(update={"children": children})
        return nodes[:i] + (replaced,) + nodes[i + 1:]
    return None


def set_strategy(forest: Forest, node_id: str, strategy: Strategy) -> Forest:
    """
    Set a node's strategy and cascade it to all of its descendants.

    Ancestors and siblings keep their own strategy.

    Returns:
        Forest: A new forest, or the same object when `node_id` is unknown.
    """
    updated = _set_in(forest, node_id, strategy)
    return forest if updated is None else updated


def _remove_in(nodes: Forest, node_id: str) -> Optional[Forest]:
    for i, node in enumerate(nodes):
        if node.id == node_id:
            return nodes[:i] + nodes[i + 1:]
        children = _remove_in(node.children, node_id)
        if children is not None:
            replaced = node.model_copy(update={"children": children})
            return nodes[:i] + (replaced,) + nodes[i + 1:]
    return None


def remove(forest: Forest, node_id: str) -> Forest:
    """
    Excise a node and its whole subtree, wherever it sits.

    Returns:
        Forest: A new forest, or the same object when `node_id` is unknown.
    """
    updated = _remove_in(forest, node_id)
    return forest if updated is None else updated


def forest_snapshot(forest: Forest) -> List[Dict[str, Any]]:
    """JSON-ready copy of the forest for prompt requests."""
    return [node.to_wire() for node in forest]
