"""
Collect per-fact issues into a report and run the whole pipeline.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple

from .classifier import DependencyMatcher, classify
from .expression import Condition
from .models import Fact, Graph, Issue, Report
from .policy import CheckConfig, PolicyContext, evaluate, evaluate_condition


logger = logging.getLogger(__name__)


def aggregate(results: Iterable[Tuple[Fact, Sequence[Issue]]]) -> Report:
    """Flatten issues in fact order; the report is clean when there are none."""
    issues: List[Issue] = []
    for _, fact_issues in results:
        issues.extend(fact_issues)
    return Report(clean=not issues, issues=tuple(issues))


def run_checks(
    graph: Graph,
    now: datetime,
    context: PolicyContext,
    checks: Optional[CheckConfig] = None,
    condition: Optional[Condition] = None,
    matcher: Optional[DependencyMatcher] = None,
) -> Report:
    """Classify ``graph`` and evaluate every fact in a single mode.

    With ``condition`` set the built-in checks are skipped entirely.
    """
    facts = classify(graph, now, matcher)

    if condition is not None:
        results = [(fact, evaluate_condition(fact, context, condition)) for fact in facts]
    else:
        results = [(fact, evaluate(fact, context, checks)) for fact in facts]

    report = aggregate(results)
    logger.info(
        "Checked %d input(s): %d issue(s) found", len(facts), len(report.issues)
    )
    return report
