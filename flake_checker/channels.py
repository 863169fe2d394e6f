"""
Fetch live Nixpkgs channel status, with a bundled fallback snapshot.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import requests

from .errors import ChannelFetchError
from .interfaces import ChannelSource
from .lifecycle import RELEASE_KIND, ROLLING_KIND, dump_snapshot, load_snapshot
from .models import ChannelStatus


logger = logging.getLogger(__name__)

CHANNEL_STATUS_URL = "https://prometheus.nixos.org/api/v1/query?query=channel_revision"
DATA_DIR = Path(__file__).resolve().parent / "data"
ALLOWED_REFS_FILE = DATA_DIR / "allowed_refs.json"
SNAPSHOT_FILE = DATA_DIR / "channel_snapshot.json"


@dataclass
class ChannelClient:
    """Query the channel_revision metric exported by NixOS monitoring."""

    url: str = CHANNEL_STATUS_URL
    timeout: float = 10.0
    session: requests.Session = field(default_factory=requests.Session)

    def fetch_metrics(self) -> List[Dict[str, str]]:
        logger.info("Fetching channel status from %s", self.url)
        try:
            with self.session.get(self.url, timeout=self.timeout) as response:
                response.raise_for_status()
                payload = response.json()
        except (requests.RequestException, ValueError) as e:
            raise ChannelFetchError(f"couldn't query {self.url}: {e}") from e

        try:
            return [result["metric"] for result in payload["data"]["result"]]
        except (KeyError, TypeError) as e:
            raise ChannelFetchError(f"unexpected response from {self.url}: {e}") from e

    def fetch_snapshot(self) -> Dict[str, ChannelStatus]:
        return snapshot_from_metrics(self.fetch_metrics())

    def fetch_supported_refs(self) -> List[str]:
        return sorted(
            metric["channel"]
            for metric in self.fetch_metrics()
            if metric.get("current") == "1" and "channel" in metric
        )


def snapshot_from_metrics(metrics: Iterable[Mapping[str, str]]) -> Dict[str, ChannelStatus]:
    """Turn raw ``channel_revision`` labels into snapshot entries."""
    snapshot: Dict[str, ChannelStatus] = {}
    for metric in metrics:
        channel = metric.get("channel")
        if not channel:
            logger.debug("Skipping metric without a channel label: %s", metric)
            continue
        status = metric.get("status", "")
        rolling = status == "rolling" or "unstable" in channel
        snapshot[channel] = ChannelStatus(
            is_current=metric.get("current") == "1",
            kind=ROLLING_KIND if rolling else RELEASE_KIND,
            prerelease=status == "beta",
            deprecated=status == "deprecated",
        )
    return snapshot


def bundled_supported_refs() -> List[str]:
    with open(ALLOWED_REFS_FILE, "r", encoding="utf-8") as f:
        return sorted(json.load(f))


def bundled_snapshot() -> Dict[str, ChannelStatus]:
    with open(SNAPSHOT_FILE, "r", encoding="utf-8") as f:
        return load_snapshot(json.load(f))


def load_channel_snapshot(
    client: Optional[ChannelSource] = None,
    offline: bool = False,
) -> Dict[str, ChannelStatus]:
    """Return the live snapshot, or the bundled one when offline or unreachable."""
    if offline:
        logger.info("Offline mode: using bundled channel snapshot")
        return bundled_snapshot()

    client = client or ChannelClient()
    try:
        return client.fetch_snapshot()
    except ChannelFetchError as e:
        logger.warning("Falling back to bundled channel snapshot: %s", e)
        return bundled_snapshot()


def check_bundled_refs(client: Optional[ChannelSource] = None) -> Tuple[bool, List[str]]:
    """Compare the bundled ref list with the live one."""
    live = (client or ChannelClient()).fetch_supported_refs()
    return live == bundled_supported_refs(), live


def check_bundled_snapshot(
    client: Optional[ChannelSource] = None,
) -> Tuple[bool, Dict[str, ChannelStatus]]:
    """Compare the bundled channel snapshot with the live one."""
    live = (client or ChannelClient()).fetch_snapshot()
    return dump_snapshot(live) == dump_snapshot(bundled_snapshot()), live
