"""
Error types raised by the flake checker.
"""

from __future__ import annotations

from typing import Sequence


class FlakeCheckerError(RuntimeError):
    """Base class for every failure the checker reports."""


class LockParseError(FlakeCheckerError):
    """Raised when a flake.lock cannot be decoded into a graph."""


class LockNotFoundError(LockParseError):
    """Raised when the flake.lock file cannot be read."""


class MalformedLockError(LockParseError):
    """Raised for invalid JSON or a payload with the wrong shape."""

    def __init__(self, message: str) -> None:
        super().__init__(f"invalid flake.lock file: {message}")


class UnsupportedVersionError(LockParseError):
    """Raised when the lock schema version is not one we understand."""

    def __init__(self, found) -> None:
        self.found = found
        super().__init__(f"unsupported flake.lock version: {found!r}")


class DanglingReferenceError(LockParseError):
    """Raised when a node input points at a node that does not exist."""

    def __init__(self, source: str, target: str) -> None:
        self.source = source
        self.target = target
        super().__init__(
            f"node `{source}` references missing node `{target}`"
        )


class ResolveError(FlakeCheckerError):
    """Raised when a follows chain cannot be resolved."""

    def __init__(self, message: str, path: Sequence[str]) -> None:
        self.path = tuple(path)
        super().__init__(f"{message}: {'/'.join(self.path)}")


class CyclicFollowsError(ResolveError):
    def __init__(self, path: Sequence[str]) -> None:
        super().__init__("cyclic follows chain", path)


class BrokenFollowsError(ResolveError):
    def __init__(self, path: Sequence[str]) -> None:
        super().__init__("follows chain points at a missing input", path)


class MissingDependencyError(FlakeCheckerError):
    """Raised when an explicitly requested Nixpkgs input is absent."""

    def __init__(self, missing: Sequence[str]) -> None:
        self.missing = tuple(missing)
        noun = "keys" if len(self.missing) > 1 else "key"
        super().__init__(
            "invalid flake.lock: no nixpkgs dependency found for specified "
            f"{noun}: {', '.join(self.missing)}"
        )


class ExpressionSyntaxError(FlakeCheckerError):
    """Raised when a condition cannot be parsed."""

    def __init__(self, message: str, position: int) -> None:
        self.position = position
        super().__init__(f"condition syntax error at offset {position}: {message}")


class EvaluationError(FlakeCheckerError):
    """Raised while evaluating a condition against a single fact."""


class ChannelFetchError(FlakeCheckerError):
    """Raised when the channel status endpoint cannot be queried."""


class InvalidSnapshotError(FlakeCheckerError):
    """Raised when a channel snapshot has the wrong shape."""
