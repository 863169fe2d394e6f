"""
Decode flake.lock files into a typed graph.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple, Union

from .errors import (
    DanglingReferenceError,
    LockNotFoundError,
    MalformedLockError,
    UnsupportedVersionError,
)
from .models import (
    Follows,
    GitHubNode,
    GitNode,
    Graph,
    IndirectNode,
    InputRef,
    MercurialNode,
    Node,
    OpaqueNode,
    PathNode,
    RootNode,
    TarballNode,
)


logger = logging.getLogger(__name__)

SUPPORTED_VERSIONS = frozenset({4, 5, 6, 7})
# Before version 5 a node could list its inputs by name only.
_LIST_INPUTS_MAX_VERSION = 4

_DECODER = json.JSONDecoder()
_WHITESPACE = re.compile(r"[ \t\n\r]*")


def load(path: Union[str, Path]) -> Graph:
    """Read and parse the flake.lock at ``path``."""
    lock_path = Path(path)
    try:
        data = lock_path.read_bytes()
    except OSError as e:
        raise LockNotFoundError(f"couldn't find the flake.lock file: {e}") from e
    logger.info("Parsing %s", lock_path)
    return parse(data)


def parse(raw: Union[bytes, str]) -> Graph:
    """Parse raw flake.lock contents.

    Every node is decoded into its variant, unknown node types become
    :class:`OpaqueNode`, and every plain input edge is checked against the
    node table. Follows chains are left for :mod:`flake_checker.follows`.
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedLockError(f"not valid UTF-8: {e}") from e

    try:
        document = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MalformedLockError(f"couldn't parse the flake.lock file as json: {e}") from e

    if not isinstance(document, dict):
        raise MalformedLockError("top-level value must be an object")

    version = _read_version(document)
    root = document.get("root")
    if not isinstance(root, str):
        raise MalformedLockError("missing field `root`")

    raw_nodes = document.get("nodes")
    if not isinstance(raw_nodes, dict):
        raise MalformedLockError("missing field `nodes`")

    sources = _node_sources(raw)
    nodes: Dict[str, Node] = {}
    for node_id, payload in raw_nodes.items():
        if not isinstance(payload, dict):
            raise MalformedLockError(f"node `{node_id}` is not an object")
        nodes[node_id] = decode_node(node_id, payload, version, sources.get(node_id))

    if root not in nodes:
        raise MalformedLockError(f"root node `{root}` not found")

    _check_edges(nodes)

    logger.debug("Decoded %d nodes (version %d)", len(nodes), version)
    return Graph(version=version, root=root, nodes=nodes)


def serialize(graph: Graph) -> str:
    """Render ``graph`` back to flake.lock JSON from the stored payloads.

    Output uses the layout Nix writes (sorted keys, two-space indent, UTF-8
    text, trailing newline), so a lock file written by Nix comes back
    byte for byte.
    """
    document = {
        "nodes": {node_id: node.payload for node_id, node in graph.nodes.items()},
        "root": graph.root,
        "version": graph.version,
    }
    return json.dumps(document, indent=2, ensure_ascii=False, sort_keys=True) + "\n"


def decode_node(
    node_id: str,
    payload: Mapping[str, Any],
    version: int,
    raw: Optional[str] = None,
) -> Node:
    if raw is None:
        raw = json.dumps(payload, ensure_ascii=False)
    inputs = _decode_inputs(node_id, payload.get("inputs"), version)
    locked = _section(node_id, payload, "locked")
    original = _section(node_id, payload, "original")

    if locked is None and original is None:
        return RootNode(inputs=inputs, raw=raw)

    if original is not None and original.get("type") == "indirect":
        target = None
        if locked is not None:
            target = _decode_locked(node_id, locked, original, inputs, raw)
        return IndirectNode(
            registry_id=original.get("id", node_id),
            target=target,
            inputs=inputs,
            raw=raw,
        )

    return _decode_locked(node_id, locked or {}, original or {}, inputs, raw)


def _decode_locked(
    node_id: str,
    locked: Mapping[str, Any],
    original: Mapping[str, Any],
    inputs: Dict[str, InputRef],
    raw: str,
) -> Node:
    node_type = locked.get("type", original.get("type"))
    ref = original.get("ref") or locked.get("ref")
    last_modified = _optional_int(node_id, locked, "lastModified")

    if node_type == "github":
        return GitHubNode(
            owner=_required(node_id, "owner", original, locked),
            repo=_required(node_id, "repo", original, locked),
            rev=locked.get("rev"),
            ref=ref,
            last_modified=last_modified,
            nar_hash=locked.get("narHash"),
            inputs=inputs,
            raw=raw,
        )
    if node_type == "git":
        return GitNode(
            url=_required(node_id, "url", locked, original),
            rev=locked.get("rev"),
            ref=ref,
            last_modified=last_modified,
            inputs=inputs,
            raw=raw,
        )
    if node_type == "hg":
        return MercurialNode(
            url=_required(node_id, "url", locked, original),
            rev=locked.get("rev"),
            ref=ref,
            last_modified=last_modified,
            inputs=inputs,
            raw=raw,
        )
    if node_type == "path":
        return PathNode(
            path=_required(node_id, "path", locked, original),
            last_modified=last_modified,
            inputs=inputs,
            raw=raw,
        )
    if node_type in ("tarball", "file"):
        return TarballNode(
            url=_required(node_id, "url", locked, original),
            nar_hash=locked.get("narHash"),
            last_modified=last_modified,
            inputs=inputs,
            raw=raw,
        )

    logger.debug("Node %s has unmodelled type %r", node_id, node_type)
    return OpaqueNode(node_type=node_type, inputs=inputs, raw=raw)


def _read_version(document: Mapping[str, Any]) -> int:
    if "version" not in document:
        raise MalformedLockError("missing field `version`")
    version = document["version"]
    if isinstance(version, bool) or not isinstance(version, int):
        raise UnsupportedVersionError(version)
    if version not in SUPPORTED_VERSIONS:
        raise UnsupportedVersionError(version)
    return version


def _decode_inputs(node_id: str, value: Any, version: int) -> Dict[str, InputRef]:
    if value is None:
        return {}

    if isinstance(value, list) and version <= _LIST_INPUTS_MAX_VERSION:
        if not all(isinstance(name, str) for name in value):
            raise MalformedLockError(f"node `{node_id}` has a non-string input")
        return {name: name for name in value}

    if not isinstance(value, dict):
        raise MalformedLockError(f"node `{node_id}` has malformed inputs")

    inputs: Dict[str, InputRef] = {}
    for name, target in value.items():
        if isinstance(target, str):
            inputs[name] = target
        elif isinstance(target, list) and all(isinstance(hop, str) for hop in target):
            inputs[name] = Follows(tuple(target))
        else:
            raise MalformedLockError(
                f"input `{name}` of node `{node_id}` must be a string or a list of strings"
            )
    return inputs


def _section(node_id: str, payload: Mapping[str, Any], key: str) -> Optional[Dict[str, Any]]:
    section = payload.get(key)
    if section is None:
        return None
    if not isinstance(section, dict):
        raise MalformedLockError(f"`{key}` of node `{node_id}` is not an object")
    return section


def _required(node_id: str, key: str, *sections: Mapping[str, Any]) -> str:
    for section in sections:
        value = section.get(key)
        if isinstance(value, str) and value:
            return value
    raise MalformedLockError(f"node `{node_id}` is missing field `{key}`")


def _optional_int(node_id: str, section: Mapping[str, Any], key: str) -> Optional[int]:
    value = section.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedLockError(f"`{key}` of node `{node_id}` must be an integer")
    return value


def _node_sources(text: str) -> Dict[str, str]:
    """Exact source text of every entry in the top-level ``nodes`` object.

    Only called on text that already decoded as a JSON object.
    """
    sources: Dict[str, str] = {}
    for key, start, _ in _members(text, _skip(text, 0)):
        if key == "nodes":
            sources = {node_id: text[s:e] for node_id, s, e in _members(text, start)}
    return sources


def _members(text: str, index: int) -> Iterator[Tuple[str, int, int]]:
    """Yield ``(key, value_start, value_end)`` for the object at ``index``."""
    if text[index:index + 1] != "{":
        return
    index = _skip(text, index + 1)
    if text[index:index + 1] == "}":
        return
    while True:
        key, index = _DECODER.raw_decode(text, index)
        index = _skip(text, _skip(text, index) + 1)
        _, end = _DECODER.raw_decode(text, index)
        yield key, index, end
        index = _skip(text, end)
        if text[index:index + 1] != ",":
            return
        index = _skip(text, index + 1)


def _skip(text: str, index: int) -> int:
    return _WHITESPACE.match(text, index).end()


def _check_edges(nodes: Mapping[str, Node]) -> None:
    for node_id, node in nodes.items():
        for target in node.inputs.values():
            if isinstance(target, str) and target not in nodes:
                raise DanglingReferenceError(node_id, target)
