"""Access point profile provisioning with bounded self-repair."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from .config import APPopupConfig
from .network import (
    HOTSPOT_BAND,
    HOTSPOT_CHANNEL,
    POWERSAVE_DISABLE,
    ConnectionProfile,
    NetworkManagerClient,
    NetworkManagerError,
)
from .profiles import ProfileInventory, active_profile_name, is_access_point, load_profiles

logger = logging.getLogger(__name__)

AP_SETTLE_DELAY = 3.0


class ActivationStage(Enum):
    """Stages of the access point activation policy."""

    INITIAL = "initial"
    REPAIR = "repair"


# At most one delete-recreate-retry per cycle.
ACTIVATION_POLICY: tuple[ActivationStage, ...] = (ActivationStage.INITIAL, ActivationStage.REPAIR)


@dataclass(frozen=True, slots=True)
class ActivationAttempt:
    stage: ActivationStage
    success: bool
    error: str | None = None

    def to_dict(self) -> dict[str, object | None]:
        return {"stage": self.stage.value, "success": self.success, "error": self.error}


@dataclass(slots=True)
class ActivationResult:
    """Outcome of :meth:`AccessPointProvisioner.activate`."""

    profile: str
    success: bool = False
    attempts: list[ActivationAttempt] = field(default_factory=list)
    ip_address: str | None = None

    @property
    def repaired(self) -> bool:
        return any(attempt.stage is ActivationStage.REPAIR for attempt in self.attempts)

    def to_dict(self) -> dict[str, object | None]:
        return {
            "profile": self.profile,
            "success": self.success,
            "attempts": [attempt.to_dict() for attempt in self.attempts],
            "ip_address": self.ip_address,
        }


class AccessPointProvisioner:
    """Create, repair and activate the configured AP profile."""

    def __init__(
        self,
        client: NetworkManagerClient,
        config: APPopupConfig,
        *,
        settle_delay: float = AP_SETTLE_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client
        self._config = config
        self._settle_delay = max(0.0, settle_delay)
        self._sleep = sleep

    @property
    def profile_name(self) -> str:
        return self._config.ap_profile_name

    # ------------------------------ operations -----------------------------
    def ensure(self, inventory: ProfileInventory | None = None) -> str:
        """Make sure an AP profile matching the configuration exists."""

        if inventory is None:
            inventory = load_profiles(self._client)
        name = self.profile_name
        existing = inventory.find_access_point(name)
        if existing is not None:
            drift = self._profile_drift(existing)
            if not drift:
                return name
            logger.info(
                "Access Point profile %s is out of date (%s); recreating it.",
                name,
                ", ".join(drift),
            )
            self._delete_profile()
        else:
            logger.info("Access Point profile %s not found; creating it.", name)
        self._create_profile()
        return name

    def activate(self, inventory: ProfileInventory | None = None) -> ActivationResult:
        """Bring the AP up, repairing the profile once if activation fails."""

        name = self.profile_name
        result = ActivationResult(profile=name)
        for stage in ACTIVATION_POLICY:
            try:
                if stage is ActivationStage.INITIAL:
                    self.ensure(inventory)
                else:
                    self._repair_profile()
                self._client.connection_up(name, self._config.interface)
            except NetworkManagerError as exc:
                result.attempts.append(ActivationAttempt(stage, False, str(exc).strip() or None))
                if stage is ActivationStage.INITIAL:
                    logger.error("Failed to activate AP %s: %s. Resetting profile...", name, exc)
                else:
                    logger.error("Failed to activate AP %s after resetting the profile: %s", name, exc)
                continue
            result.attempts.append(ActivationAttempt(stage, True))
            break
        else:
            return result

        if self._settle_delay:
            self._sleep(self._settle_delay)
        active = active_profile_name(self._client, self._config.interface)
        if active is None or not is_access_point(self._client, active):
            logger.error("Failed to activate Access Point %s; active connection is %s.", name, active)
            return result
        result.success = True
        result.ip_address = self._client.connection_ipv4_address(name) or self._config.ap_address
        logger.info("Access Point %s activated at %s.", name, result.ip_address)
        return result

    # ----------------------------- implementation --------------------------
    def _profile_drift(self, profile: ConnectionProfile) -> list[str]:
        """Return the settings where ``profile`` differs from the configuration.

        IPv4 settings the manager did not report are not compared. The
        password is a secret nmcli hides, so it is never compared.
        """

        config = self._config
        drift: list[str] = []
        if profile.ssid != config.ap_ssid:
            drift.append(f"SSID {profile.ssid} != {config.ap_ssid}")
        if profile.ipv4_address is not None and profile.ipv4_address != config.ap_cidr:
            drift.append(f"address {profile.ipv4_address} != {config.ap_cidr}")
        if profile.ipv4_gateway is not None and profile.ipv4_gateway != config.ap_gateway:
            drift.append(f"gateway {profile.ipv4_gateway} != {config.ap_gateway}")
        return drift

    def _repair_profile(self) -> None:
        self._delete_profile()
        self._create_profile()

    def _delete_profile(self) -> None:
        try:
            self._client.delete_connection(self.profile_name)
        except NetworkManagerError as exc:
            logger.debug("Unable to delete AP profile %s: %s", self.profile_name, exc)

    def _create_profile(self) -> None:
        config = self._config
        name = self.profile_name
        self._client.create_hotspot(
            config.interface,
            name,
            config.ap_ssid,
            config.ap_password,
            band=HOTSPOT_BAND,
            channel=HOTSPOT_CHANNEL,
        )
        self._client.modify_connection(
            name,
            [
                ("ipv4.method", "shared"),
                ("ipv4.addresses", config.ap_cidr),
                ("ipv4.gateway", config.ap_gateway),
                ("802-11-wireless.powersave", POWERSAVE_DISABLE),
            ],
        )
        try:
            self._client.reload_connections()
        except NetworkManagerError as exc:
            logger.warning("Unable to reload NetworkManager connections: %s", exc)
        logger.info("Created Access Point profile %s for SSID %s.", name, config.ap_ssid)


__all__ = [
    "ACTIVATION_POLICY",
    "AccessPointProvisioner",
    "ActivationAttempt",
    "ActivationResult",
    "ActivationStage",
]
