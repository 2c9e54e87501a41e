"""Saved-profile inventory and active connection probe."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .network import ConnectionProfile, NetworkManagerClient, NetworkManagerError, ProfileMode

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProfileInventory:
    """Saved WiFi profiles split by mode, highest priority first."""

    clients: tuple[ConnectionProfile, ...] = ()
    access_points: tuple[ConnectionProfile, ...] = ()

    def find_access_point(self, name: str) -> ConnectionProfile | None:
        for profile in self.access_points:
            if profile.name == name:
                return profile
        return None

    def find(self, name: str) -> ConnectionProfile | None:
        for profile in (*self.clients, *self.access_points):
            if profile.name == name:
                return profile
        return None


def _by_priority(profiles: list[ConnectionProfile]) -> tuple[ConnectionProfile, ...]:
    # sorted() is stable, so equal priorities keep the manager's ordering.
    return tuple(sorted(profiles, key=lambda profile: profile.autoconnect_priority, reverse=True))


def load_profiles(client: NetworkManagerClient) -> ProfileInventory:
    """Read every saved WiFi connection and partition it by mode.

    Records whose details cannot be read are skipped; they never abort the
    inventory. A failure to list connections at all yields an empty
    inventory.
    """

    try:
        names = list(client.list_wifi_connections())
    except NetworkManagerError as exc:
        logger.warning("Unable to list saved WiFi connections: %s", exc)
        return ProfileInventory()

    clients: list[ConnectionProfile] = []
    access_points: list[ConnectionProfile] = []
    for name in names:
        try:
            profile = client.get_profile(name)
        except NetworkManagerError as exc:
            logger.warning("Skipping WiFi connection %s: %s", name, exc)
            continue
        if profile.mode is ProfileMode.ACCESS_POINT:
            access_points.append(profile)
        elif profile.mode is ProfileMode.CLIENT:
            clients.append(profile)
    inventory = ProfileInventory(clients=_by_priority(clients), access_points=_by_priority(access_points))
    logger.debug(
        "Loaded %d client and %d access point profiles",
        len(inventory.clients),
        len(inventory.access_points),
    )
    return inventory


def active_profile_name(client: NetworkManagerClient, interface: str) -> str | None:
    """Return the connection bound to ``interface``, if any."""

    try:
        return client.active_connection(interface) or None
    except NetworkManagerError as exc:
        logger.warning("Unable to query the active connection on %s: %s", interface, exc)
        return None


def is_access_point(client: NetworkManagerClient, name: str | None) -> bool:
    """Return True when ``name`` resolves to an AP-mode profile."""

    if not name:
        return False
    try:
        profile = client.get_profile(name)
    except NetworkManagerError as exc:
        logger.debug("Unable to resolve connection %s: %s", name, exc)
        return False
    return profile.is_access_point


def active_profile(
    client: NetworkManagerClient,
    interface: str,
    inventory: ProfileInventory | None = None,
) -> ConnectionProfile | None:
    """Return the full profile active on ``interface``.

    The inventory snapshot is consulted first; the manager is asked directly
    only for connections the snapshot does not know about.
    """

    name = active_profile_name(client, interface)
    if name is None:
        return None
    if inventory is not None:
        known = inventory.find(name)
        if known is not None:
            return known
    try:
        return client.get_profile(name)
    except NetworkManagerError as exc:
        logger.debug("Active connection %s could not be resolved: %s", name, exc)
        return None


__all__ = [
    "ProfileInventory",
    "active_profile",
    "active_profile_name",
    "is_access_point",
    "load_profiles",
]
