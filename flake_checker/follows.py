"""
Resolve indirect inputs and follows chains against a parsed graph.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence, Tuple

from .errors import BrokenFollowsError, CyclicFollowsError
from .models import Follows, Graph, IndirectNode, Node


logger = logging.getLogger(__name__)

MAX_FOLLOWS_HOPS = 32

_Hop = Tuple[str, str]


@dataclass(frozen=True)
class ResolvedNode:
    """The node an input ultimately denotes, with the id it is stored under."""

    node_id: str
    node: Node


def resolve(graph: Graph, node_id: str) -> ResolvedNode:
    """Resolve a node to the concrete node it stands for.

    Registry references resolve to their locked target when there is one;
    every other node resolves to itself.
    """
    node = graph.nodes.get(node_id)
    if node is None:
        raise BrokenFollowsError((node_id,))
    if isinstance(node, IndirectNode) and node.target is not None:
        return ResolvedNode(node_id, node.target)
    return ResolvedNode(node_id, node)


def resolve_input(graph: Graph, node_id: str, name: str) -> ResolvedNode:
    """Resolve the input ``name`` of ``node_id``, walking follows chains."""
    target_id = _follow_edge(graph, node_id, name, trail=(), path=(name,))
    return resolve(graph, target_id)


def _follow_edge(
    graph: Graph,
    node_id: str,
    name: str,
    trail: Tuple[_Hop, ...],
    path: Sequence[str],
) -> str:
    hop = (node_id, name)
    if hop in trail or len(trail) >= MAX_FOLLOWS_HOPS:
        raise CyclicFollowsError([f"{n}.{i}" for n, i in trail + (hop,)])

    node = graph.nodes.get(node_id)
    target = node.inputs.get(name) if node is not None else None
    if target is None:
        raise BrokenFollowsError(path)
    if isinstance(target, Follows):
        logger.debug("Input %s.%s follows %s", node_id, name, "/".join(target.path))
        return _walk(graph, target.path, trail + (hop,))
    return target


def _walk(graph: Graph, path: Sequence[str], trail: Tuple[_Hop, ...]) -> str:
    # An empty path denotes the root flake itself.
    current = graph.root
    for index, name in enumerate(path):
        current = _follow_edge(graph, current, name, trail, path[: index + 1])
    return current
