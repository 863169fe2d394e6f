"""Tests for follows resolution."""

import pytest

from flake_checker.errors import BrokenFollowsError, CyclicFollowsError
from flake_checker.follows import (
    MAX_FOLLOWS_HOPS,
    resolve,
    resolve_input,
)
from flake_checker.lock_parser import parse
from flake_checker.models import GitHubNode, RootNode


def test_non_indirect_node_resolves_to_itself(make_lock, make_github_node):
    graph = parse(make_lock({"nixpkgs": make_github_node()}, {"nixpkgs": "nixpkgs"}))

    resolved = resolve(graph, "nixpkgs")

    assert resolved.node_id == "nixpkgs"
    assert resolved.node is graph.nodes["nixpkgs"]


def test_indirect_node_resolves_to_target(make_lock, make_github_node):
    node = make_github_node()
    node["original"] = {"id": "nixpkgs", "type": "indirect"}
    graph = parse(make_lock({"nixpkgs": node}, {"nixpkgs": "nixpkgs"}))

    resolved = resolve(graph, "nixpkgs")

    assert isinstance(resolved.node, GitHubNode)
    assert resolved.node.owner == "NixOS"


def test_nested_follows_resolves_through_root(make_lock, make_github_node):
    nodes = {
        "nixpkgs": make_github_node(),
        "nixpkgs_2": make_github_node(ref="nixos-23.11"),
        "hm": make_github_node(owner="nix-community", repo="home-manager", inputs={"nixpkgs": "nixpkgs_2"}),
        "tool": make_github_node(owner="someone", repo="tool", inputs={"nixpkgs": ["hm", "nixpkgs"]}),
    }
    graph = parse(make_lock(nodes, {"nixpkgs": "nixpkgs", "hm": "hm", "tool": "tool"}))

    assert resolve_input(graph, "tool", "nixpkgs").node_id == "nixpkgs_2"


def test_root_input_that_follows(make_lock, make_github_node):
    nodes = {
        "nixpkgs_2": make_github_node(ref="nixos-23.11"),
        "hm": make_github_node(owner="nix-community", repo="home-manager", inputs={"nixpkgs": "nixpkgs_2"}),
    }
    graph = parse(make_lock(nodes, {"nixpkgs": ["hm", "nixpkgs"], "hm": "hm"}))

    resolved = resolve_input(graph, graph.root, "nixpkgs")

    assert resolved.node_id == "nixpkgs_2"
    assert resolved.node.ref == "nixos-23.11"


def test_empty_follows_points_at_root(make_lock):
    graph = parse(make_lock({}, {"self": []}))

    assert isinstance(resolve_input(graph, "root", "self").node, RootNode)


@pytest.mark.parametrize(
    "root_inputs",
    [
        {"a": ["a"]},
        {"a": ["b"], "b": ["a"]},
    ],
)
def test_cyclic_follows(make_lock, root_inputs):
    graph = parse(make_lock({}, root_inputs))

    with pytest.raises(CyclicFollowsError):
        resolve_input(graph, "root", "a")


def test_follows_chain_longer_than_limit(make_lock, make_github_node):
    length = MAX_FOLLOWS_HOPS + 5
    root_inputs = {f"i{k}": [f"i{k + 1}"] for k in range(length)}
    root_inputs[f"i{length}"] = "nixpkgs"
    graph = parse(make_lock({"nixpkgs": make_github_node()}, root_inputs))

    with pytest.raises(CyclicFollowsError):
        resolve_input(graph, "root", "i0")
    assert resolve_input(graph, "root", f"i{length - 3}").node_id == "nixpkgs"


def test_broken_follows(make_lock, make_github_node):
    nodes = {"hm": make_github_node(owner="nix-community", repo="home-manager")}
    graph = parse(make_lock(nodes, {"nixpkgs": ["hm", "nixpkgs"], "hm": "hm"}))

    with pytest.raises(BrokenFollowsError) as excinfo:
        resolve_input(graph, "root", "nixpkgs")
    assert excinfo.value.path == ("hm", "nixpkgs")
