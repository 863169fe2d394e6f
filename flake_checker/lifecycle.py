"""
Classify upstream Nixpkgs branches into lifecycle stages.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional

from packaging.version import InvalidVersion, Version

from .errors import InvalidSnapshotError
from .models import ChannelStatus, LifecycleMap, LifecycleStage, freeze_lifecycle
from .time_utils import ensure_utc, parse_timestamp


logger = logging.getLogger(__name__)

ROLLING_KIND = "rolling"
RELEASE_KIND = "release"

# Releases are supported for roughly seven months after they ship.
DEFAULT_GRACE_PERIOD = timedelta(days=214)

SUPPORTED_STAGES = frozenset(
    {LifecycleStage.ROLLING, LifecycleStage.BETA, LifecycleStage.STABLE}
)

_RELEASE_NUMBER = re.compile(r"(?<![\d.])(\d{2}\.\d{2})(?![\d.])")


@dataclass(frozen=True)
class LifecyclePolicy:
    grace_period: timedelta = DEFAULT_GRACE_PERIOD


def classify_branches(
    snapshot: Mapping[str, ChannelStatus],
    now: datetime,
    policy: Optional[LifecyclePolicy] = None,
) -> LifecycleMap:
    """Assign a :class:`LifecycleStage` to every branch in ``snapshot``.

    The result depends only on the arguments; branches are visited in sorted
    order so identical snapshots always produce identical maps.
    """
    policy = policy or LifecyclePolicy()
    now = ensure_utc(now)
    stages: Dict[str, LifecycleStage] = {}

    for branch in sorted(snapshot):
        stages[branch] = branch_stage(branch, snapshot[branch], now, policy)

    logger.debug("Classified %d branches", len(stages))
    return freeze_lifecycle(stages)


def branch_stage(
    branch: str,
    status: ChannelStatus,
    now: datetime,
    policy: LifecyclePolicy,
) -> LifecycleStage:
    if status.is_current:
        if status.deprecated:
            return LifecycleStage.DEPRECATED
        if status.kind == ROLLING_KIND:
            return LifecycleStage.ROLLING
        return LifecycleStage.BETA if status.prerelease else LifecycleStage.STABLE

    released = status.released_at or release_date(branch)
    if released is not None and now - ensure_utc(released) > policy.grace_period:
        return LifecycleStage.UNMAINTAINED
    return LifecycleStage.DEPRECATED


def release_date(branch: str) -> Optional[datetime]:
    """Infer a release date from a ``YY.MM`` number in the branch name."""
    match = _RELEASE_NUMBER.search(branch)
    if match is None:
        return None
    try:
        year, month = Version(match.group(1)).release[:2]
    except (InvalidVersion, ValueError):
        return None
    if not 1 <= month <= 12:
        return None
    return datetime(2000 + year, month, 1, tzinfo=timezone.utc)


def supported_refs(lifecycle: LifecycleMap) -> List[str]:
    """Branches that are still a valid choice to pin to."""
    return sorted(b for b, stage in lifecycle.items() if stage in SUPPORTED_STAGES)


def ref_statuses(lifecycle: LifecycleMap) -> Dict[str, str]:
    return {branch: stage.value for branch, stage in lifecycle.items()}


def load_snapshot(data: Mapping[str, Any]) -> Dict[str, ChannelStatus]:
    """Decode the JSON form of a channel snapshot."""
    if not isinstance(data, Mapping):
        raise InvalidSnapshotError("channel snapshot must be an object")

    snapshot: Dict[str, ChannelStatus] = {}
    for branch, entry in data.items():
        if not isinstance(entry, Mapping):
            raise InvalidSnapshotError(f"entry for `{branch}` must be an object")
        kind = entry.get("kind")
        if kind not in (ROLLING_KIND, RELEASE_KIND):
            raise InvalidSnapshotError(f"entry for `{branch}` has unknown kind {kind!r}")
        is_current = entry.get("isCurrent")
        if not isinstance(is_current, bool):
            raise InvalidSnapshotError(f"entry for `{branch}` needs a boolean `isCurrent`")
        released_at = None
        if entry.get("releasedAt") is not None:
            released_at = parse_timestamp(entry["releasedAt"])
            if released_at is None:
                raise InvalidSnapshotError(f"entry for `{branch}` has a bad `releasedAt`")
        snapshot[branch] = ChannelStatus(
            is_current=is_current,
            kind=kind,
            prerelease=bool(entry.get("prerelease", False)),
            deprecated=bool(entry.get("deprecated", False)),
            released_at=released_at,
        )
    return snapshot


def dump_snapshot(snapshot: Mapping[str, ChannelStatus]) -> Dict[str, Dict[str, Any]]:
    """Inverse of :func:`load_snapshot`, used to refresh the bundled copy."""
    data: Dict[str, Dict[str, Any]] = {}
    for branch in sorted(snapshot):
        status = snapshot[branch]
        entry: Dict[str, Any] = {"isCurrent": status.is_current, "kind": status.kind}
        if status.prerelease:
            entry["prerelease"] = True
        if status.deprecated:
            entry["deprecated"] = True
        if status.released_at is not None:
            entry["releasedAt"] = status.released_at.isoformat()
        data[branch] = entry
    return data
