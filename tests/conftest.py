"""Shared fixtures for building flake.lock documents."""

import json
from datetime import datetime, timezone

import pytest


NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def github_node(
    owner="NixOS",
    repo="nixpkgs",
    ref="nixos-unstable",
    days_old=3,
    now=NOW,
    inputs=None,
):
    """A github node locked ``days_old`` days before ``now``."""
    original = {"owner": owner, "repo": repo, "type": "github"}
    if ref is not None:
        original["ref"] = ref
    locked = {
        "narHash": "sha256-AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA=",
        "owner": owner,
        "repo": repo,
        "rev": "0123456789abcdef0123456789abcdef01234567",
        "type": "github",
    }
    if days_old is not None:
        locked["lastModified"] = int(now.timestamp()) - days_old * 86400
    node = {"locked": locked, "original": original}
    if inputs is not None:
        node["inputs"] = inputs
    return node


def lock_document(nodes, root_inputs, version=7):
    all_nodes = {"root": {"inputs": root_inputs}}
    all_nodes.update(nodes)
    return {"nodes": all_nodes, "root": "root", "version": version}


def lock_bytes(nodes, root_inputs, version=7):
    return json.dumps(lock_document(nodes, root_inputs, version)).encode("utf-8")


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_github_node():
    return github_node


@pytest.fixture
def make_lock():
    return lock_bytes
