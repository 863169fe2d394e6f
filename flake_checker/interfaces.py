"""
Interfaces for the collaborators the checking pipeline depends on.
"""

from __future__ import annotations

from typing import Dict, List, Protocol

from .models import ChannelStatus


class ChannelSource(Protocol):
    """Provide the current status of upstream Nixpkgs branches."""

    def fetch_snapshot(self) -> Dict[str, ChannelStatus]:
        ...

    def fetch_supported_refs(self) -> List[str]:
        ...
