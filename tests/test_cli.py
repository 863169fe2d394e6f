import json
import os
from datetime import datetime, timezone

import pytest

from flake_checker.channels import bundled_snapshot, bundled_supported_refs
from flake_checker.cli import main
from flake_checker.models import ChannelStatus


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    monkeypatch.delenv("GITHUB_STEP_SUMMARY", raising=False)
    monkeypatch.delenv("GITHUB_REPOSITORY", raising=False)
    for name in list(os.environ):
        if name.startswith("NIX_FLAKE_CHECKER_"):
            monkeypatch.delenv(name)


@pytest.fixture
def write_lock(tmp_path, make_github_node, make_lock):
    def write(**node_args):
        now = datetime.now(timezone.utc)
        lock = tmp_path / "flake.lock"
        lock.write_bytes(make_lock({"nixpkgs": make_github_node(now=now, **node_args)}, {"nixpkgs": "nixpkgs"}))
        return lock

    return write


def run_cli(*argv):
    return main(["--offline", "--no-telemetry", *argv])


def test_clean_lock(write_lock, capsys):
    lock = write_lock(days_old=2)

    assert run_cli(str(lock), "--fail-mode") == 0
    assert "found no issues" in capsys.readouterr().out


def test_fail_mode_sets_exit_status(write_lock, capsys):
    lock = write_lock(days_old=40)

    assert run_cli(str(lock)) == 0
    assert run_cli(str(lock), "--fail-mode") == 1
    assert "is 40 days old" in capsys.readouterr().out


def test_disabled_check(write_lock):
    lock = write_lock(owner="someone-else")

    assert run_cli(str(lock), "--fail-mode") == 1
    assert run_cli(str(lock), "--fail-mode", "--no-check-owner") == 0


def test_condition_mode(write_lock, capsys):
    lock = write_lock(days_old=40, owner="someone-else")

    assert run_cli(str(lock), "--fail-mode", "--condition", "numDaysOld < 60") == 0
    assert run_cli(str(lock), "--fail-mode", "--condition", "owner == 'NixOS'") == 1
    assert "The following inputs violate that condition" in capsys.readouterr().out


def test_condition_syntax_error(write_lock, capsys):
    lock = write_lock()

    assert run_cli(str(lock), "--condition", "numDaysOld <") == 1
    assert "Error: " in capsys.readouterr().err


def test_missing_lock(tmp_path, capsys):
    missing = tmp_path / "nope" / "flake.lock"

    assert run_cli(str(missing)) == 0
    assert "skipping" in capsys.readouterr().out
    assert run_cli(str(missing), "--ignore-missing-flake-lock", "false") == 1


def test_missing_nixpkgs_key(write_lock, capsys):
    lock = write_lock()

    assert run_cli(str(lock), "--nixpkgs-keys", "nixpkgs,nixpkgs-stable") == 1
    assert "specified key: nixpkgs-stable" in capsys.readouterr().err


def test_reports_written(write_lock, tmp_path, monkeypatch):
    lock = write_lock(ref="not-a-channel")
    summary = tmp_path / "summary.md"
    monkeypatch.setenv("GITHUB_STEP_SUMMARY", str(summary))
    out = tmp_path / "out"

    run_cli(str(lock), "--markdown-summary", "--output-dir", str(out))

    assert "### Non-supported Git branches" in summary.read_text()
    assert json.loads((out / "flake_checker_report.json").read_text())["clean"] is False
    assert (out / "flake_checker_issues.csv").exists()


class FakeChannels:
    def __init__(self, refs=(), snapshot=None):
        self.refs = refs
        self.snapshot = snapshot

    def fetch_snapshot(self):
        return dict(self.snapshot)

    def fetch_supported_refs(self):
        return list(self.refs)


def test_get_supported_refs(capsys):
    assert main(["--get-supported-refs"], client=FakeChannels(["nixos-unstable"])) == 0
    assert json.loads(capsys.readouterr().out) == ["nixos-unstable"]


def test_check_supported_refs(capsys):
    bundled = bundled_supported_refs()

    assert main(["--check-supported-refs"], client=FakeChannels(bundled)) == 0
    assert main(["--check-supported-refs"], client=FakeChannels(bundled + ["nixos-99.05"])) == 1
    assert "newly supported: nixos-99.05" in capsys.readouterr().err


def test_get_ref_statuses(capsys):
    snapshot = {
        "nixos-24.05": ChannelStatus(is_current=True, kind="release", deprecated=True),
        "nixos-unstable": ChannelStatus(is_current=True, kind="rolling"),
    }

    assert main(["--get-ref-statuses"], client=FakeChannels(snapshot=snapshot)) == 0
    assert json.loads(capsys.readouterr().out) == {
        "nixos-24.05": {"isCurrent": True, "kind": "release", "deprecated": True},
        "nixos-unstable": {"isCurrent": True, "kind": "rolling"},
    }


def test_check_ref_statuses(capsys):
    bundled = bundled_snapshot()
    drifted = dict(bundled)
    drifted["nixos-99.05"] = ChannelStatus(is_current=True, kind="release", prerelease=True)

    assert main(["--check-ref-statuses"], client=FakeChannels(snapshot=bundled)) == 0
    assert main(["--check-ref-statuses"], client=FakeChannels(snapshot=drifted)) == 1
    assert "changed channels: nixos-99.05" in capsys.readouterr().err
