"""
Core data models for the flake checker.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, ClassVar, Dict, Mapping, Optional, Tuple, Union


@dataclass(frozen=True)
class Follows:
    """An input that resolves to whatever another input path resolves to."""

    path: Tuple[str, ...]


InputRef = Union[str, Follows]


class Node:
    """Base class for every decoded flake.lock node.

    Subclasses are frozen dataclasses that all carry ``inputs`` (input name to
    node id or :class:`Follows`) and ``raw`` (the node's JSON payload exactly
    as it was read, used when the graph is serialised again).
    """

    variant: ClassVar[str] = "node"
    inputs: Mapping[str, InputRef]
    raw: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "inputs", MappingProxyType(dict(self.inputs)))

    @property
    def payload(self) -> Dict[str, Any]:
        return json.loads(self.raw) if self.raw else {}


@dataclass(frozen=True)
class RootNode(Node):
    variant: ClassVar[str] = "root"

    inputs: Mapping[str, InputRef] = field(default_factory=dict)
    raw: str = field(default="", compare=False, repr=False)


@dataclass(frozen=True)
class GitHubNode(Node):
    variant: ClassVar[str] = "github"

    owner: str
    repo: str
    rev: Optional[str] = None
    ref: Optional[str] = None
    last_modified: Optional[int] = None
    nar_hash: Optional[str] = None
    inputs: Mapping[str, InputRef] = field(default_factory=dict)
    raw: str = field(default="", compare=False, repr=False)


@dataclass(frozen=True)
class GitNode(Node):
    variant: ClassVar[str] = "git"

    url: str
    rev: Optional[str] = None
    ref: Optional[str] = None
    last_modified: Optional[int] = None
    inputs: Mapping[str, InputRef] = field(default_factory=dict)
    raw: str = field(default="", compare=False, repr=False)


@dataclass(frozen=True)
class MercurialNode(Node):
    variant: ClassVar[str] = "hg"

    url: str
    rev: Optional[str] = None
    ref: Optional[str] = None
    last_modified: Optional[int] = None
    inputs: Mapping[str, InputRef] = field(default_factory=dict)
    raw: str = field(default="", compare=False, repr=False)


@dataclass(frozen=True)
class PathNode(Node):
    variant: ClassVar[str] = "path"

    path: str
    last_modified: Optional[int] = None
    inputs: Mapping[str, InputRef] = field(default_factory=dict)
    raw: str = field(default="", compare=False, repr=False)


@dataclass(frozen=True)
class TarballNode(Node):
    variant: ClassVar[str] = "tarball"

    url: str
    nar_hash: Optional[str] = None
    last_modified: Optional[int] = None
    inputs: Mapping[str, InputRef] = field(default_factory=dict)
    raw: str = field(default="", compare=False, repr=False)


@dataclass(frozen=True)
class IndirectNode(Node):
    """A flake-registry reference such as ``inputs.nixpkgs.url = "nixpkgs"``.

    ``target`` holds the concrete node decoded from the ``locked`` section,
    or ``None`` when the registry reference was never locked.
    """

    variant: ClassVar[str] = "indirect"

    registry_id: str
    target: Optional[Node] = None
    inputs: Mapping[str, InputRef] = field(default_factory=dict)
    raw: str = field(default="", compare=False, repr=False)


@dataclass(frozen=True)
class OpaqueNode(Node):
    """A node of a type the checker does not model."""

    variant: ClassVar[str] = "opaque"

    node_type: Optional[str] = None
    inputs: Mapping[str, InputRef] = field(default_factory=dict)
    raw: str = field(default="", compare=False, repr=False)


@dataclass(frozen=True)
class Graph:
    """A parsed flake.lock."""

    version: int
    root: str
    nodes: Mapping[str, Node]

    def __post_init__(self) -> None:
        object.__setattr__(self, "nodes", MappingProxyType(dict(self.nodes)))

    @property
    def root_node(self) -> Node:
        return self.nodes[self.root]


@dataclass(frozen=True)
class Fact:
    """Normalized facts about one top-level Nixpkgs input."""

    name: str
    git_ref: Optional[str] = None
    owner: Optional[str] = None
    num_days_old: Optional[int] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "gitRef": self.git_ref,
            "numDaysOld": self.num_days_old,
            "owner": self.owner,
        }


class LifecycleStage(str, Enum):
    ROLLING = "rolling"
    BETA = "beta"
    STABLE = "stable"
    DEPRECATED = "deprecated"
    UNMAINTAINED = "unmaintained"


LifecycleMap = Mapping[str, LifecycleStage]


def freeze_lifecycle(stages: Mapping[str, LifecycleStage]) -> LifecycleMap:
    """Return a read-only, branch-sorted copy of ``stages``."""
    return MappingProxyType({name: stages[name] for name in sorted(stages)})


class IssueKind(str, Enum):
    DISALLOWED = "disallowed"
    OUTDATED = "outdated"
    NON_UPSTREAM = "non_upstream"
    CONDITION_FAILED = "condition_failed"


@dataclass(frozen=True)
class Disallowed:
    kind: ClassVar[IssueKind] = IssueKind.DISALLOWED

    reference: str


@dataclass(frozen=True)
class Outdated:
    kind: ClassVar[IssueKind] = IssueKind.OUTDATED

    num_days_old: int


@dataclass(frozen=True)
class NonUpstream:
    kind: ClassVar[IssueKind] = IssueKind.NON_UPSTREAM

    owner: str


@dataclass(frozen=True)
class ConditionFailed:
    """The user condition returned false, or could not be evaluated."""

    kind: ClassVar[IssueKind] = IssueKind.CONDITION_FAILED

    expression: str
    facts: Dict[str, Any]
    error: Optional[str] = None


IssueDetail = Union[Disallowed, Outdated, NonUpstream, ConditionFailed]


@dataclass(frozen=True)
class Issue:
    """One policy violation for one input."""

    input: str
    detail: IssueDetail

    @property
    def kind(self) -> IssueKind:
        return self.detail.kind

    def to_dict(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {"input": self.input, "kind": self.kind.value}
        record.update(asdict(self.detail))
        return record


@dataclass(frozen=True)
class Report:
    """Aggregated outcome of one run."""

    clean: bool
    issues: Tuple[Issue, ...] = ()

    def of_kind(self, kind: IssueKind) -> Tuple[Issue, ...]:
        return tuple(issue for issue in self.issues if issue.kind == kind)


@dataclass(frozen=True)
class ChannelStatus:
    """Snapshot entry for one upstream branch."""

    is_current: bool
    kind: str
    prerelease: bool = False
    deprecated: bool = False
    released_at: Optional[datetime] = None
