"""
Command-line interface for the flake checker.
"""

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from . import __version__
from .aggregator import run_checks
from .channels import (
    ChannelClient,
    bundled_snapshot,
    bundled_supported_refs,
    check_bundled_refs,
    check_bundled_snapshot,
    load_channel_snapshot,
)
from .config import CheckerConfig, load_config, parse_bool
from .errors import FlakeCheckerError
from .expression import compile_condition
from .interfaces import ChannelSource
from .lifecycle import classify_branches, dump_snapshot, supported_refs
from .lock_parser import load
from .logging_config import configure_logging
from .policy import PolicyContext
from .reporting import (
    append_step_summary,
    export_issues_csv,
    log_issues,
    render_markdown,
    render_text,
    save_report_json,
)
from .telemetry import TelemetryReport, send_telemetry
from .time_utils import utc_now


logger = logging.getLogger(__name__)


def _keys(value: str):
    return tuple(part.strip() for part in value.split(",") if part.strip())


def _flag(value: str) -> bool:
    try:
        return parse_bool(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flake-checker",
        description="Check a flake.lock for outdated, non-upstream or unsupported Nixpkgs inputs",
    )

    parser.add_argument(
        "flake_lock_path",
        nargs="?",
        default=None,
        help="The path to the flake.lock file to check. Default: flake.lock"
    )

    parser.add_argument(
        "--no-check-supported",
        dest="check_supported",
        action="store_const",
        const=False,
        help="Don't check that Nixpkgs inputs use a supported Git branch"
    )

    parser.add_argument(
        "--no-check-outdated",
        dest="check_outdated",
        action="store_const",
        const=False,
        help="Don't check that Nixpkgs inputs are recent enough"
    )

    parser.add_argument(
        "--no-check-owner",
        dest="check_owner",
        action="store_const",
        const=False,
        help="Don't check that Nixpkgs inputs are owned by the upstream organization"
    )

    parser.add_argument(
        "--fail-mode",
        action="store_const",
        const=True,
        help="Exit with a non-zero status when any issue is found"
    )

    parser.add_argument(
        "--ignore-missing-flake-lock",
        type=_flag,
        default=None,
        metavar="BOOL",
        help="Succeed quietly when the flake.lock does not exist. Default: true"
    )

    parser.add_argument(
        "--nixpkgs-keys",
        type=_keys,
        default=None,
        help="Comma-separated root input names to check. Default: nixpkgs"
    )

    parser.add_argument(
        "--nixpkgs-prefixes",
        type=_keys,
        default=None,
        help="Comma-separated input name prefixes to check as well"
    )

    parser.add_argument(
        "--max-days",
        type=int,
        default=None,
        help="Maximum allowed age of a Nixpkgs input in days. Default: 30"
    )

    parser.add_argument(
        "--required-owner",
        default=None,
        help="GitHub owner Nixpkgs inputs must come from. Default: NixOS"
    )

    parser.add_argument(
        "--condition",
        default=None,
        help="A boolean condition every Nixpkgs input must satisfy (replaces the built-in checks)"
    )

    parser.add_argument(
        "--markdown-summary",
        action="store_const",
        const=True,
        help="Append a Markdown summary to $GITHUB_STEP_SUMMARY"
    )

    parser.add_argument(
        "--no-telemetry",
        action="store_true",
        default=None,
        help="Don't send anonymous usage telemetry"
    )

    parser.add_argument(
        "--offline",
        action="store_const",
        const=True,
        help="Use the bundled channel snapshot instead of querying it live"
    )

    parser.add_argument(
        "--output-dir",
        type=Path,
        default=None,
        help="Write JSON and CSV reports to this directory"
    )

    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (DEBUG, INFO, WARNING, ERROR). Default: WARNING"
    )

    parser.add_argument(
        "--get-supported-refs",
        action="store_true",
        help="Print the live list of supported branches as JSON and exit"
    )

    parser.add_argument(
        "--check-supported-refs",
        action="store_true",
        help="Exit non-zero when the bundled branch list differs from the live one"
    )

    parser.add_argument(
        "--get-ref-statuses",
        action="store_true",
        help="Print the live channel snapshot as JSON and exit"
    )

    parser.add_argument(
        "--check-ref-statuses",
        action="store_true",
        help="Exit non-zero when the bundled channel snapshot differs from the live one"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    return parser


def run(
    config: CheckerConfig,
    now: Optional[datetime] = None,
    client: Optional[ChannelSource] = None,
) -> int:
    """Check one flake.lock; returns the process exit status."""
    now = now or utc_now()

    if not config.flake_lock_path.exists() and config.ignore_missing_flake_lock:
        logger.warning("%s not found, nothing to check", config.flake_lock_path)
        print(f"No flake.lock found at {config.flake_lock_path}; skipping")
        return 0

    graph = load(config.flake_lock_path)
    condition = compile_condition(config.condition)

    snapshot = load_channel_snapshot(client, offline=config.offline)
    lifecycle = classify_branches(snapshot, now)
    refs = supported_refs(lifecycle) or bundled_supported_refs()

    context = PolicyContext(
        supported_refs=frozenset(refs),
        lifecycle=lifecycle,
        max_days=config.max_days,
        required_owner=config.required_owner,
    )

    report = run_checks(
        graph,
        now,
        context,
        checks=config.checks,
        condition=condition,
        matcher=config.matcher,
    )

    print(render_text(report, context, config.flake_lock_path, config.condition), end="")
    log_issues(report, context, config.fail_mode)

    if config.markdown_summary:
        if config.step_summary_path is None:
            logger.warning("GITHUB_STEP_SUMMARY is not set; skipping Markdown summary")
        else:
            append_step_summary(
                render_markdown(report, context, config.condition),
                config.step_summary_path,
            )

    if config.output_dir is not None:
        results_file = save_report_json(report, config.output_dir)
        logger.info("Report saved to: %s", results_file)
        issues_file = export_issues_csv(report, config.output_dir)
        if issues_file is not None:
            logger.info("Issues saved to: %s", issues_file)

    if config.send_telemetry:
        telemetry = TelemetryReport.from_report(report, __version__)
        if telemetry is not None:
            send_telemetry(telemetry)

    if config.fail_mode and not report.clean:
        return 1
    return 0


def _supported_refs_action(args: argparse.Namespace, client: Optional[ChannelSource]) -> int:
    if args.get_supported_refs:
        refs = (client or ChannelClient()).fetch_supported_refs()
        print(json.dumps(refs, indent=2))
        return 0

    matches, live = check_bundled_refs(client)
    if matches:
        print("The bundled list of supported branches is up to date")
        return 0
    bundled = bundled_supported_refs()
    added = sorted(set(live) - set(bundled))
    removed = sorted(set(bundled) - set(live))
    print("The bundled list of supported branches is out of date", file=sys.stderr)
    if added:
        print(f"  newly supported: {', '.join(added)}", file=sys.stderr)
    if removed:
        print(f"  no longer supported: {', '.join(removed)}", file=sys.stderr)
    return 1


def _ref_statuses_action(args: argparse.Namespace, client: Optional[ChannelSource]) -> int:
    if args.get_ref_statuses:
        snapshot = (client or ChannelClient()).fetch_snapshot()
        print(json.dumps(dump_snapshot(snapshot), indent=2))
        return 0

    matches, live = check_bundled_snapshot(client)
    if matches:
        print("The bundled channel snapshot is up to date")
        return 0
    bundled = dump_snapshot(bundled_snapshot())
    current = dump_snapshot(live)
    changed = sorted(b for b in set(bundled) | set(current) if bundled.get(b) != current.get(b))
    print("The bundled channel snapshot is out of date", file=sys.stderr)
    print(f"  changed channels: {', '.join(changed)}", file=sys.stderr)
    return 1


def main(argv: Optional[List[str]] = None, client: Optional[ChannelSource] = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args)
    except ValueError as e:
        parser.error(str(e))

    configure_logging(config.log_level)

    try:
        if args.get_supported_refs or args.check_supported_refs:
            return _supported_refs_action(args, client)
        if args.get_ref_statuses or args.check_ref_statuses:
            return _ref_statuses_action(args, client)
        return run(config, client=client)
    except FlakeCheckerError as e:
        logger.debug("Run failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
