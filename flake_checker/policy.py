"""
Built-in checks and condition evaluation for a single fact.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, List, Optional

from .errors import EvaluationError
from .expression import Condition
from .lifecycle import ref_statuses
from .models import (
    ConditionFailed,
    Disallowed,
    Fact,
    Issue,
    LifecycleMap,
    NonUpstream,
    Outdated,
)


logger = logging.getLogger(__name__)

MAX_DAYS = 30
UPSTREAM_OWNER = "NixOS"

KEY_GIT_REF = "gitRef"
KEY_NUM_DAYS_OLD = "numDaysOld"
KEY_OWNER = "owner"
KEY_SUPPORTED_REFS = "supportedRefs"
KEY_REF_STATUSES = "refStatuses"


@dataclass(frozen=True)
class PolicyContext:
    """Run-wide constants every fact is evaluated against."""

    supported_refs: FrozenSet[str]
    lifecycle: LifecycleMap = field(default_factory=lambda: MappingProxyType({}))
    max_days: int = MAX_DAYS
    required_owner: Optional[str] = UPSTREAM_OWNER


@dataclass(frozen=True)
class CheckConfig:
    check_supported: bool = True
    check_outdated: bool = True
    check_owner: bool = True


def evaluate(fact: Fact, context: PolicyContext, checks: Optional[CheckConfig] = None) -> List[Issue]:
    """Run the enabled built-in checks, in the order supported, outdated, owner."""
    checks = checks or CheckConfig()
    issues: List[Issue] = []

    if checks.check_supported and fact.git_ref is not None:
        if fact.git_ref not in context.supported_refs:
            issues.append(Issue(fact.name, Disallowed(reference=fact.git_ref)))

    if checks.check_outdated and fact.num_days_old is not None:
        if fact.num_days_old > context.max_days:
            issues.append(Issue(fact.name, Outdated(num_days_old=fact.num_days_old)))

    if checks.check_owner and fact.owner is not None and context.required_owner is not None:
        if fact.owner.lower() != context.required_owner.lower():
            issues.append(Issue(fact.name, NonUpstream(owner=fact.owner)))

    return issues


def condition_variables(fact: Fact, context: PolicyContext) -> Dict[str, Any]:
    variables = fact.as_dict()
    variables[KEY_SUPPORTED_REFS] = sorted(context.supported_refs)
    variables[KEY_REF_STATUSES] = ref_statuses(context.lifecycle)
    return variables


def evaluate_condition(fact: Fact, context: PolicyContext, condition: Condition) -> List[Issue]:
    """Evaluate ``condition`` for one fact.

    Evaluation errors stay local to this fact and are reported as a failed
    condition carrying the error message.
    """
    try:
        passed = condition.evaluate(condition_variables(fact, context))
    except EvaluationError as e:
        logger.warning("Condition could not be evaluated for %s: %s", fact.name, e)
        return [
            Issue(
                fact.name,
                ConditionFailed(expression=condition.source, facts=fact.as_dict(), error=str(e)),
            )
        ]

    if passed:
        return []
    return [Issue(fact.name, ConditionFailed(expression=condition.source, facts=fact.as_dict()))]
