import logging
from pathlib import Path

import pytest

from flake_checker.cli import build_parser
from flake_checker.config import CheckerConfig, load_config, parse_bool
from flake_checker.logging_config import resolve_level


def test_defaults():
    config = load_config(build_parser().parse_args([]), environ={})

    assert config == CheckerConfig()
    assert config.matcher.keys == ("nixpkgs",)


def test_environment_fallback():
    environ = {
        "NIX_FLAKE_CHECKER_FLAKE_LOCK_PATH": "sub/flake.lock",
        "NIX_FLAKE_CHECKER_CHECK_OUTDATED": "false",
        "NIX_FLAKE_CHECKER_FAIL_MODE": "true",
        "NIX_FLAKE_CHECKER_NIXPKGS_KEYS": "nixpkgs, nixpkgs-stable",
        "NIX_FLAKE_CHECKER_MAX_DAYS": "14",
        "NIX_FLAKE_CHECKER_NO_TELEMETRY": "1",
        "NIX_FLAKE_CHECKER_CONDITION": "",
        "GITHUB_STEP_SUMMARY": "/tmp/summary.md",
    }

    config = load_config(build_parser().parse_args([]), environ=environ)

    assert config.flake_lock_path == Path("sub/flake.lock")
    assert config.checks.check_outdated is False
    assert config.fail_mode is True
    assert config.nixpkgs_keys == ("nixpkgs", "nixpkgs-stable")
    assert config.max_days == 14
    assert config.send_telemetry is False
    assert config.condition is None
    assert config.step_summary_path == Path("/tmp/summary.md")


def test_flags_override_environment():
    args = build_parser().parse_args(
        ["other.lock", "--max-days", "7", "--no-check-owner", "--nixpkgs-prefixes", "nixpkgs-"]
    )
    environ = {"NIX_FLAKE_CHECKER_MAX_DAYS": "14", "NIX_FLAKE_CHECKER_CHECK_OWNER": "true"}

    config = load_config(args, environ=environ)

    assert config.flake_lock_path == Path("other.lock")
    assert config.max_days == 7
    assert config.check_owner is False
    assert config.matcher.matches("nixpkgs-darwin")


def test_bad_boolean_in_environment():
    with pytest.raises(ValueError, match="NIX_FLAKE_CHECKER_FAIL_MODE"):
        load_config(environ={"NIX_FLAKE_CHECKER_FAIL_MODE": "maybe"})


@pytest.mark.parametrize("value, expected", [("1", True), ("Yes", True), ("off", False), (None, None)])
def test_parse_bool(value, expected):
    assert parse_bool(value) is expected


@pytest.mark.parametrize("level, expected", [("debug", logging.DEBUG), (None, logging.WARNING), ("LOUD", logging.WARNING)])
def test_resolve_level(level, expected):
    assert resolve_level(level) == expected
