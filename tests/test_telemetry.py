import hashlib
import json

import requests

from flake_checker.models import Disallowed, Issue, Outdated, Report
from flake_checker.telemetry import TELEMETRY_TIMEOUT, TelemetryReport, opaque_id, send_telemetry


GITHUB_ENV = {
    "GITHUB_REPOSITORY": "octo/flake",
    "GITHUB_REPOSITORY_ID": "42",
    "GITHUB_REPOSITORY_OWNER": "octo",
    "GITHUB_REPOSITORY_OWNER_ID": "7",
    "CI": "true",
}

REPORT = Report(
    clean=False,
    issues=(
        Issue("nixpkgs", Disallowed("main")),
        Issue("nixpkgs", Outdated(45)),
        Issue("nixpkgs-alt", Outdated(31)),
    ),
)


def test_opaque_id_hashes_repository_identity():
    expected = hashlib.sha256(b"octo/flake42octo7").hexdigest()

    assert opaque_id(GITHUB_ENV) == expected


def test_no_report_outside_github():
    assert TelemetryReport.from_report(REPORT, "0.1.0", environ={"CI": "true"}) is None


def test_report_counts():
    telemetry = TelemetryReport.from_report(REPORT, "0.1.0", environ=GITHUB_ENV)

    assert telemetry.is_ci is True
    assert (telemetry.disallowed, telemetry.outdated, telemetry.non_upstream) == (1, 2, 0)


class FakeResponse:
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def raise_for_status(self):
        pass


class FakeSession:
    def __init__(self, error=None):
        self.error = error
        self.posted = []

    def post(self, url, data=None, headers=None, timeout=None):
        if self.error is not None:
            raise self.error
        self.posted.append((url, json.loads(data), timeout))
        return FakeResponse()


def test_send_telemetry():
    session = FakeSession()
    telemetry = TelemetryReport.from_report(REPORT, "0.1.0", environ=GITHUB_ENV)

    assert send_telemetry(telemetry, session=session, endpoint="https://example.invalid/t") is True

    url, body, timeout = session.posted[0]
    assert url == "https://example.invalid/t"
    assert body["outdated"] == 2
    assert timeout == TELEMETRY_TIMEOUT


def test_send_telemetry_failure_is_swallowed():
    telemetry = TelemetryReport.from_report(REPORT, "0.1.0", environ=GITHUB_ENV)

    assert send_telemetry(telemetry, session=FakeSession(requests.Timeout("slow"))) is False
