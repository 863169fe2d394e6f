"""
Runtime configuration assembled from command-line flags and environment.

Every flag falls back to a ``NIX_FLAKE_CHECKER_*`` environment variable, and
then to the defaults below.
"""

from __future__ import annotations

import argparse
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional, Tuple

from .classifier import DEFAULT_NIXPKGS_KEYS, DependencyMatcher
from .policy import MAX_DAYS, UPSTREAM_OWNER, CheckConfig

ENV_PREFIX = "NIX_FLAKE_CHECKER_"
_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class CheckerConfig:
    flake_lock_path: Path = Path("flake.lock")
    check_supported: bool = True
    check_outdated: bool = True
    check_owner: bool = True
    fail_mode: bool = False
    ignore_missing_flake_lock: bool = True
    nixpkgs_keys: Tuple[str, ...] = DEFAULT_NIXPKGS_KEYS
    nixpkgs_prefixes: Tuple[str, ...] = ()
    max_days: int = MAX_DAYS
    required_owner: Optional[str] = UPSTREAM_OWNER
    condition: Optional[str] = None
    markdown_summary: bool = False
    step_summary_path: Optional[Path] = None
    send_telemetry: bool = True
    offline: bool = False
    output_dir: Optional[Path] = None
    log_level: str = "WARNING"

    @property
    def checks(self) -> CheckConfig:
        return CheckConfig(
            check_supported=self.check_supported,
            check_outdated=self.check_outdated,
            check_owner=self.check_owner,
        )

    @property
    def matcher(self) -> DependencyMatcher:
        return DependencyMatcher(keys=self.nixpkgs_keys, prefixes=self.nixpkgs_prefixes)


def parse_bool(value: Optional[str]) -> Optional[bool]:
    if value is None:
        return None
    lowered = value.strip().lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _split_list(value: str) -> Tuple[str, ...]:
    return tuple(part.strip() for part in value.split(",") if part.strip())


def load_config(
    args: Optional[argparse.Namespace] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> CheckerConfig:
    """Merge parsed CLI ``args`` over environment values over defaults."""
    environ = os.environ if environ is None else environ
    values = vars(args) if args is not None else {}
    defaults = CheckerConfig()

    def pick(name: str, convert=lambda v: v) -> Any:
        value = values.get(name)
        if value is not None:
            return value
        env_value = environ.get(ENV_PREFIX + name.upper())
        if env_value is not None and env_value != "":
            try:
                return convert(env_value)
            except ValueError as e:
                raise ValueError(f"{ENV_PREFIX}{name.upper()}: {e}") from e
        return getattr(defaults, name)

    no_telemetry = values.get("no_telemetry") or parse_bool(
        environ.get(ENV_PREFIX + "NO_TELEMETRY")
    )
    summary_path = environ.get("GITHUB_STEP_SUMMARY")

    return CheckerConfig(
        flake_lock_path=Path(pick("flake_lock_path", Path)),
        check_supported=pick("check_supported", parse_bool),
        check_outdated=pick("check_outdated", parse_bool),
        check_owner=pick("check_owner", parse_bool),
        fail_mode=pick("fail_mode", parse_bool),
        ignore_missing_flake_lock=pick("ignore_missing_flake_lock", parse_bool),
        nixpkgs_keys=tuple(pick("nixpkgs_keys", _split_list)),
        nixpkgs_prefixes=tuple(pick("nixpkgs_prefixes", _split_list)),
        max_days=int(pick("max_days", int)),
        required_owner=pick("required_owner"),
        condition=pick("condition"),
        markdown_summary=pick("markdown_summary", parse_bool),
        step_summary_path=Path(summary_path) if summary_path else None,
        send_telemetry=not no_telemetry,
        offline=pick("offline", parse_bool),
        output_dir=pick("output_dir", Path),
        log_level=pick("log_level"),
    )
