"""
Derive normalized facts for the Nixpkgs inputs of a flake.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple

from .errors import MissingDependencyError
from .follows import resolve_input
from .models import (
    Fact,
    GitHubNode,
    GitNode,
    Graph,
    MercurialNode,
    Node,
    PathNode,
    TarballNode,
)
from .time_utils import days_old


logger = logging.getLogger(__name__)

DEFAULT_NIXPKGS_KEYS = ("nixpkgs",)


@dataclass(frozen=True)
class DependencyMatcher:
    """Select root inputs by exact name or by name prefix."""

    keys: Tuple[str, ...] = DEFAULT_NIXPKGS_KEYS
    prefixes: Tuple[str, ...] = ()

    def matches(self, name: str) -> bool:
        return name in self.keys or any(name.startswith(p) for p in self.prefixes)

    def missing(self, found: Iterable[str]) -> List[str]:
        found = set(found)
        return [key for key in self.keys if key not in found]


def classify(
    graph: Graph,
    now: datetime,
    matcher: Optional[DependencyMatcher] = None,
) -> List[Fact]:
    """Build one :class:`Fact` per matching root input, in file order."""
    matcher = matcher or DependencyMatcher()
    facts: List[Fact] = []

    for name in graph.root_node.inputs:
        if not matcher.matches(name):
            continue
        resolved = resolve_input(graph, graph.root, name)
        fact = extract_fact(name, resolved.node, now)
        logger.debug("Classified %s (%s): %s", name, resolved.node.variant, fact)
        facts.append(fact)

    missing = matcher.missing(fact.name for fact in facts)
    if missing:
        raise MissingDependencyError(missing)

    return facts


def extract_fact(name: str, node: Node, now: datetime) -> Fact:
    git_ref, owner, last_modified = _locked_fields(node)
    return Fact(
        name=name,
        git_ref=git_ref,
        owner=owner,
        num_days_old=days_old(last_modified, now),
    )


def _locked_fields(node: Node) -> Sequence[Optional[object]]:
    if isinstance(node, GitHubNode):
        return node.ref, node.owner, node.last_modified
    if isinstance(node, (GitNode, MercurialNode)):
        return node.ref, None, node.last_modified
    if isinstance(node, (PathNode, TarballNode)):
        return None, None, node.last_modified
    # Unlocked registry references, opaque and root nodes carry nothing usable.
    return None, None, None
