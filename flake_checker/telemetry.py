"""
Anonymous usage telemetry.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
from dataclasses import asdict, dataclass
from typing import Mapping, Optional

import requests

from .models import IssueKind, Report


logger = logging.getLogger(__name__)

TELEMETRY_ENDPOINT = "https://install.determinate.systems/flake-checker/telemetry"
TELEMETRY_TIMEOUT = 3.0

_REPOSITORY_VARS = (
    "GITHUB_REPOSITORY",
    "GITHUB_REPOSITORY_ID",
    "GITHUB_REPOSITORY_OWNER",
    "GITHUB_REPOSITORY_OWNER_ID",
)


@dataclass(frozen=True)
class TelemetryReport:
    """Issue counts for one run, keyed by an opaque repository id."""

    distinct_id: str
    version: str
    is_ci: bool
    disallowed: int
    outdated: int
    non_upstream: int

    @classmethod
    def from_report(
        cls,
        report: Report,
        version: str,
        environ: Optional[Mapping[str, str]] = None,
    ) -> Optional["TelemetryReport"]:
        environ = os.environ if environ is None else environ
        distinct_id = opaque_id(environ)
        if distinct_id is None:
            return None
        return cls(
            distinct_id=distinct_id,
            version=version,
            is_ci=bool(environ.get("CI")),
            disallowed=len(report.of_kind(IssueKind.DISALLOWED)),
            outdated=len(report.of_kind(IssueKind.OUTDATED)),
            non_upstream=len(report.of_kind(IssueKind.NON_UPSTREAM)),
        )


def opaque_id(environ: Mapping[str, str]) -> Optional[str]:
    """SHA-256 over the GitHub repository identity, or None outside Actions."""
    hasher = hashlib.sha256()
    for name in _REPOSITORY_VARS:
        value = environ.get(name)
        if value is None:
            return None
        hasher.update(value.encode("utf-8"))
    return hasher.hexdigest()


def send_telemetry(
    report: TelemetryReport,
    session: Optional[requests.Session] = None,
    endpoint: str = TELEMETRY_ENDPOINT,
) -> bool:
    """Post ``report``; delivery is best effort and never fails the run."""
    session = session or requests.Session()
    try:
        with session.post(
            endpoint,
            data=json.dumps(asdict(report), indent=2),
            headers={"Content-Type": "application/json"},
            timeout=TELEMETRY_TIMEOUT,
        ) as response:
            response.raise_for_status()
    except requests.RequestException as e:
        logger.debug("Telemetry not delivered: %s", e)
        return False
    return True
