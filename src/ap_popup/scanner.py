"""Wireless neighbour scanning and known-network matching."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Sequence

from .network import ConnectionProfile, NetworkManagerClient, NetworkManagerError, ScanResult, VisibleNetwork

logger = logging.getLogger(__name__)

SCAN_SETTLE_DELAY = 2.0


@dataclass(frozen=True, slots=True)
class NeighborScan:
    """Outcome of one scan against the known client profiles.

    ``visible`` is ``None`` when the scan results could not be read at all,
    which is reported separately from a successful scan that simply found no
    known network in range.
    """

    visible: ScanResult | None
    candidates: tuple[ConnectionProfile, ...] = ()

    @property
    def failed(self) -> bool:
        return self.visible is None

    @property
    def known_network_in_range(self) -> bool:
        return bool(self.candidates)


def rescan(
    client: NetworkManagerClient,
    interface: str,
    *,
    settle_delay: float = SCAN_SETTLE_DELAY,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Request a fresh scan and wait for the driver to publish results."""

    try:
        client.rescan(interface)
    except NetworkManagerError as exc:
        # Drivers refuse rescans while busy or in AP mode; cached results
        # are still worth reading.
        logger.warning("Failed to initiate WiFi scan on %s: %s", interface, exc)
    if settle_delay > 0:
        sleep(settle_delay)


def visible_ssids(client: NetworkManagerClient, interface: str) -> ScanResult:
    result = client.visible_ssids(interface)
    if result:
        logger.info("Nearby SSIDs: %s", ", ".join(result))
    else:
        logger.info("No SSIDs found during scan.")
    return result


def match_known_networks(
    profiles: Iterable[ConnectionProfile], visible: ScanResult | Iterable[str]
) -> list[ConnectionProfile]:
    """Return the profiles whose SSID is visible, keeping their order."""

    seen = visible if isinstance(visible, ScanResult) else ScanResult.from_iterable(visible)
    return [profile for profile in profiles if profile.ssid and profile.ssid in seen]


def scan_for_candidates(
    client: NetworkManagerClient,
    interface: str,
    profiles: Sequence[ConnectionProfile],
    *,
    settle_delay: float = SCAN_SETTLE_DELAY,
    sleep: Callable[[float], None] = time.sleep,
) -> NeighborScan:
    """Rescan and match the results against ``profiles``."""

    rescan(client, interface, settle_delay=settle_delay, sleep=sleep)
    try:
        visible = visible_ssids(client, interface)
    except NetworkManagerError as exc:
        logger.warning("Unable to read WiFi scan results on %s: %s", interface, exc)
        return NeighborScan(visible=None)
    candidates = tuple(match_known_networks(profiles, visible))
    if candidates:
        logger.info(
            "Known networks in range: %s",
            ", ".join(profile.name for profile in candidates),
        )
    return NeighborScan(visible=visible, candidates=candidates)


def rank_visible_networks(networks: Iterable[VisibleNetwork]) -> list[VisibleNetwork]:
    """Collapse duplicate SSIDs to their strongest entry, strongest first.

    Hidden networks (blank SSID) are dropped.
    """

    def _signal_value(network: VisibleNetwork) -> float:
        if network.signal is None:
            return float("-inf")
        return float(network.signal)

    best: dict[str, VisibleNetwork] = {}
    for network in networks:
        ssid = network.ssid
        if not ssid or not ssid.strip():
            continue
        existing = best.get(ssid)
        if existing is None or _signal_value(network) > _signal_value(existing):
            best[ssid] = network
    return sorted(best.values(), key=_signal_value, reverse=True)


__all__ = [
    "NeighborScan",
    "match_known_networks",
    "rank_visible_networks",
    "rescan",
    "scan_for_candidates",
    "visible_ssids",
]
