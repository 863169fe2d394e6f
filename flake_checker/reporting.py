"""
Reporting and export utilities.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Optional, Union

import pandas as pd

from .models import (
    ConditionFailed,
    Disallowed,
    Issue,
    IssueKind,
    NonUpstream,
    Outdated,
    Report,
)
from .policy import PolicyContext


logger = logging.getLogger(__name__)

ISSUE_COLUMNS = [
    "input",
    "kind",
    "reference",
    "num_days_old",
    "owner",
    "expression",
    "error",
]


def issue_message(issue: Issue, context: PolicyContext) -> str:
    detail = issue.detail
    name = issue.input
    if isinstance(detail, Disallowed):
        return f"the `{name}` input uses the non-supported Git branch `{detail.reference}` for Nixpkgs"
    if isinstance(detail, Outdated):
        return (
            f"the `{name}` input is {detail.num_days_old} days old "
            f"(the max allowed is {context.max_days})"
        )
    if isinstance(detail, NonUpstream):
        return (
            f"the `{name}` input has the non-upstream owner `{detail.owner}` "
            f"rather than `{context.required_owner}` (upstream)"
        )
    if isinstance(detail, ConditionFailed) and detail.error:
        return f"the `{name}` input could not be checked against the condition: {detail.error}"
    return f"the `{name}` input violates the supplied condition"


def render_text(
    report: Report,
    context: PolicyContext,
    lock_path: Union[str, Path],
    condition: Optional[str] = None,
) -> str:
    if report.clean:
        return f"The Nix Flake Checker scanned {lock_path} and found no issues\n"

    lines: List[str] = []
    if condition is not None:
        lines.append(f"You supplied this condition for your flake:\n\n{condition}\n")
        lines.append("The following inputs violate that condition:\n")
        for issue in report.issues:
            suffix = f" ({issue.detail.error})" if getattr(issue.detail, "error", None) else ""
            lines.append(f"* {issue.input}{suffix}")
    else:
        word = "issue" if len(report.issues) == 1 else "issues"
        lines.append(f"The Nix Flake Checker found {len(report.issues)} {word} in {lock_path}:\n")
        for issue in report.issues:
            lines.append(f"* {issue_message(issue, context)}")
    return "\n".join(lines) + "\n"


def render_markdown(
    report: Report,
    context: PolicyContext,
    condition: Optional[str] = None,
) -> str:
    lines = ["## Nix Flake Checker results", ""]
    if report.clean:
        lines.append(":white_check_mark: No issues found")
        return "\n".join(lines) + "\n"

    word = "issue" if len(report.issues) == 1 else "issues"
    lines.append(f":warning: {len(report.issues)} {word} found")
    lines.append("")

    if condition is not None:
        lines += ["Condition:", "", "```", condition, "```", ""]
        lines.append("Inputs that violate the condition:")
        lines.append("")
        lines += [f"* `{issue.input}`" for issue in report.issues]
        return "\n".join(lines) + "\n"

    sections = [
        (IssueKind.DISALLOWED, "### Non-supported Git branches"),
        (IssueKind.OUTDATED, "### Outdated Nixpkgs dependencies"),
        (IssueKind.NON_UPSTREAM, "### Non-upstream Nixpkgs dependencies"),
    ]
    for kind, heading in sections:
        issues = report.of_kind(kind)
        if not issues:
            continue
        lines += [heading, ""]
        lines += [f"* {issue_message(issue, context)}" for issue in issues]
        lines.append("")

    if report.of_kind(IssueKind.DISALLOWED):
        refs = ", ".join(f"`{ref}`" for ref in sorted(context.supported_refs))
        lines.append(f"Supported branches: {refs}")
    return "\n".join(lines) + "\n"


def append_step_summary(markdown: str, summary_path: Union[str, Path]) -> Path:
    summary_file = Path(summary_path)
    summary_file.parent.mkdir(parents=True, exist_ok=True)
    with open(summary_file, "a", encoding="utf-8") as f:
        f.write(markdown)
    return summary_file


def save_report_json(report: Report, output_dir: Path, name: str = "flake_checker") -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    results_file = output_dir / f"{name}_report.json"
    payload = {
        "clean": report.clean,
        "issues": [issue.to_dict() for issue in report.issues],
    }
    with open(results_file, "w") as f:
        json.dump(payload, f, indent=2, default=str)
    return results_file


def export_issues_csv(report: Report, output_dir: Path, name: str = "flake_checker") -> Path | None:
    if report.clean:
        return None
    output_dir.mkdir(parents=True, exist_ok=True)
    issues_file = output_dir / f"{name}_issues.csv"
    df = pd.DataFrame([issue.to_dict() for issue in report.issues])
    df = df.drop(columns=["facts"], errors="ignore").reindex(columns=ISSUE_COLUMNS)
    df.to_csv(issues_file, index=False)
    return issues_file


def log_issues(report: Report, context: PolicyContext, fail_mode: bool = False) -> None:
    level = logging.ERROR if fail_mode else logging.WARNING
    for issue in report.issues:
        logger.log(level, "%s", issue_message(issue, context))
