"""Mode decision controller: stay, join a known network, or raise the AP."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from .access_point import AP_SETTLE_DELAY, AccessPointProvisioner, ActivationResult
from .config import APPopupConfig
from .event_log import EventLog
from .network import ConnectionProfile, NetworkManagerClient, NetworkManagerError
from .profiles import ProfileInventory, active_profile, load_profiles
from .scanner import SCAN_SETTLE_DELAY, NeighborScan, scan_for_candidates

logger = logging.getLogger(__name__)

RADIO_SETTLE_DELAY = 5.0


class ConnectionState(Enum):
    """Connection state of the interface, derived fresh every cycle."""

    CLIENT_ACTIVE = "client-active"
    AP_ACTIVE = "ap-active"
    NO_CONNECTION = "no-connection"


class CycleDecision(Enum):
    """What a cycle decided to do."""

    STAY_CLIENT = "stay-client"
    STAY_AP = "stay-ap"
    JOIN_CLIENT = "join-client"
    START_AP = "start-ap"


@dataclass(frozen=True, slots=True)
class CycleState:
    """Live system state observed at the start of a cycle."""

    active_profile: ConnectionProfile | None = None
    is_active_ap: bool = False
    candidate_profiles: tuple[ConnectionProfile, ...] = ()

    @property
    def state(self) -> ConnectionState:
        if self.active_profile is None:
            return ConnectionState.NO_CONNECTION
        if self.is_active_ap:
            return ConnectionState.AP_ACTIVE
        return ConnectionState.CLIENT_ACTIVE


@dataclass(slots=True)
class CycleOutcome:
    """Result of :meth:`ModeController.run_cycle`."""

    state: ConnectionState
    decision: CycleDecision
    profile: str | None
    cycle: CycleState
    success: bool = True
    activation: ActivationResult | None = None

    def to_dict(self) -> dict[str, object | None]:
        return {
            "state": self.state.value,
            "decision": self.decision.value,
            "profile": self.profile,
            "success": self.success,
            "active_profile": self.cycle.active_profile.name if self.cycle.active_profile else None,
            "candidates": [profile.name for profile in self.cycle.candidate_profiles],
            "activation": self.activation.to_dict() if self.activation else None,
        }


class ModeController:
    """Run one stateless decision cycle against the network manager.

    Every call re-derives the state from the live system; nothing is carried
    between cycles.
    """

    def __init__(
        self,
        client: NetworkManagerClient,
        config: APPopupConfig,
        *,
        event_log: EventLog | None = None,
        provisioner: AccessPointProvisioner | None = None,
        scan_settle_delay: float = SCAN_SETTLE_DELAY,
        radio_settle_delay: float = RADIO_SETTLE_DELAY,
        ap_settle_delay: float = AP_SETTLE_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client
        self._config = config
        self._event_log = event_log if event_log is not None else EventLog(config.event_log_path)
        self._provisioner = provisioner or AccessPointProvisioner(
            client, config, settle_delay=ap_settle_delay, sleep=sleep
        )
        self._scan_settle_delay = max(0.0, scan_settle_delay)
        self._radio_settle_delay = max(0.0, radio_settle_delay)
        self._sleep = sleep

    @property
    def event_log(self) -> EventLog:
        return self._event_log

    # ------------------------------ operations -----------------------------
    def run_cycle(self, *, force_ap: bool = False) -> CycleOutcome:
        interface = self._config.interface
        if force_ap:
            self._record_log("force_ap", "Forcing Access Point activation.")
            return self._start_access_point(CycleState(), load_profiles(self._client))

        self.ensure_wifi_enabled()
        inventory = load_profiles(self._client)
        self._record_log("check_active", "Checking the current active WiFi connection...")
        active = active_profile(self._client, interface, inventory)

        if active is None:
            self._record_log(
                "no_active_connection",
                f"No active connection on {interface}; scanning for known networks.",
            )
            scan = self._scan(inventory)
            cycle = CycleState(candidate_profiles=scan.candidates)
            joined = self._connect_candidates(scan.candidates)
            if joined is not None:
                return self._joined(cycle, joined)
            self._report_no_network(scan)
            return self._start_access_point(cycle, inventory)

        if not active.is_access_point:
            cycle = CycleState(active_profile=active, is_active_ap=False)
            self._record_log(
                "client_active",
                f"Active connection {active.name} is a network.",
                metadata={"profile": active.name, "ssid": active.ssid},
            )
            return CycleOutcome(
                state=ConnectionState.CLIENT_ACTIVE,
                decision=CycleDecision.STAY_CLIENT,
                profile=active.name,
                cycle=cycle,
            )

        self._record_log(
            "ap_active",
            f"Active connection {active.name} is an AP.",
            metadata={"profile": active.name},
        )
        if not inventory.clients:
            self._record_log("ap_stay", "No client profiles saved; keeping the Access Point.")
            return self._stay_on_access_point(CycleState(active_profile=active, is_active_ap=True))

        scan = self._scan(inventory)
        cycle = CycleState(active_profile=active, is_active_ap=True, candidate_profiles=scan.candidates)
        if not scan.known_network_in_range:
            self._report_no_network(scan)
            return self._stay_on_access_point(cycle)

        self._record_log("switch_to_client", "Known WiFi SSID detected. Switching to network.")
        try:
            self._client.connection_down(active.name)
        except NetworkManagerError as exc:
            self._record_log(
                "ap_down_error",
                f"Failed to bring down AP connection {active.name}: {exc}.",
                level=logging.WARNING,
            )
        joined = self._connect_candidates(scan.candidates)
        if joined is not None:
            return self._joined(cycle, joined)
        self._record_log(
            "no_network_available",
            "No network available. Starting Access Point.",
            level=logging.WARNING,
        )
        return self._start_access_point(cycle, inventory)

    def ensure_wifi_enabled(self) -> None:
        """Switch the WiFi radio on when it is off and auto-enable is set."""

        try:
            enabled = self._client.wifi_radio_enabled()
        except NetworkManagerError as exc:
            self._record_log(
                "radio_status_error",
                f"Unable to read WiFi radio state: {exc}.",
                level=logging.WARNING,
            )
            return
        if enabled:
            return
        if not self._config.auto_enable_wifi:
            self._record_log(
                "radio_disabled",
                "WiFi is disabled and automatic enabling is turned off.",
                level=logging.WARNING,
            )
            return
        self._record_log("radio_enable", "WiFi is disabled. Enabling WiFi...")
        try:
            self._client.set_wifi_radio(True)
        except NetworkManagerError as exc:
            self._record_log(
                "radio_enable_error",
                f"Failed to enable WiFi: {exc}.",
                level=logging.ERROR,
            )
            return
        if self._radio_settle_delay:
            self._sleep(self._radio_settle_delay)

    # ------------------------------ helpers -----------------------------
    def _scan(self, inventory: ProfileInventory) -> NeighborScan:
        return scan_for_candidates(
            self._client,
            self._config.interface,
            inventory.clients,
            settle_delay=self._scan_settle_delay,
            sleep=self._sleep,
        )

    def _report_no_network(self, scan: NeighborScan) -> None:
        if scan.failed:
            self._record_log(
                "scan_failed",
                "WiFi scan results unavailable; treating as no known network in range.",
                level=logging.WARNING,
            )
        else:
            self._record_log(
                "no_known_networks",
                "No known WiFi networks in range.",
                metadata={"visible": list(scan.visible or ())},
            )

    def _connect_candidates(
        self, candidates: tuple[ConnectionProfile, ...]
    ) -> ConnectionProfile | None:
        """Try candidates in priority order; the first success wins."""

        for profile in candidates:
            metadata = {
                "profile": profile.name,
                "ssid": profile.ssid,
                "priority": profile.autoconnect_priority,
            }
            self._record_log(
                "connect_attempt",
                f"Attempting connection to {profile.name}.",
                metadata=metadata,
            )
            try:
                self._client.connection_up(profile.name, self._config.interface)
            except NetworkManagerError as exc:
                self._record_log(
                    "connect_error",
                    f"Connection to {profile.name} failed: {exc}.",
                    level=logging.WARNING,
                    metadata={**metadata, "timed_out": exc.timed_out or None},
                )
                continue
            return profile
        return None

    def _joined(self, cycle: CycleState, profile: ConnectionProfile) -> CycleOutcome:
        self._record_log(
            "connect_success",
            f"Connected to network {profile.name}.",
            metadata={"profile": profile.name, "ssid": profile.ssid},
        )
        return CycleOutcome(
            state=ConnectionState.CLIENT_ACTIVE,
            decision=CycleDecision.JOIN_CLIENT,
            profile=profile.name,
            cycle=cycle,
        )

    def _stay_on_access_point(self, cycle: CycleState) -> CycleOutcome:
        profile = cycle.active_profile.name if cycle.active_profile else None
        return CycleOutcome(
            state=ConnectionState.AP_ACTIVE,
            decision=CycleDecision.STAY_AP,
            profile=profile,
            cycle=cycle,
        )

    def _start_access_point(self, cycle: CycleState, inventory: ProfileInventory) -> CycleOutcome:
        self._record_log(
            "ap_activate",
            f"Activating Access Point {self._provisioner.profile_name}.",
        )
        result = self._provisioner.activate(inventory)
        if result.success:
            self._record_log(
                "ap_activated",
                f"Access Point {result.profile} activated at {result.ip_address}.",
                metadata={"repaired": result.repaired or None, "ip_address": result.ip_address},
            )
            return CycleOutcome(
                state=ConnectionState.AP_ACTIVE,
                decision=CycleDecision.START_AP,
                profile=result.profile,
                cycle=cycle,
                activation=result,
            )
        self._record_log(
            "ap_failed",
            f"Failed to activate Access Point {result.profile}.",
            level=logging.ERROR,
            metadata={"attempts": [attempt.to_dict() for attempt in result.attempts]},
        )
        return CycleOutcome(
            state=self._current_state(),
            decision=CycleDecision.START_AP,
            profile=result.profile,
            cycle=cycle,
            success=False,
            activation=result,
        )

    def _current_state(self) -> ConnectionState:
        active = active_profile(self._client, self._config.interface)
        if active is None:
            return ConnectionState.NO_CONNECTION
        if active.is_access_point:
            return ConnectionState.AP_ACTIVE
        return ConnectionState.CLIENT_ACTIVE

    def _record_log(
        self,
        event: str,
        message: str,
        *,
        level: int = logging.INFO,
        metadata: dict[str, object | None] | None = None,
    ) -> None:
        """Store a journal entry and mirror it to the logger."""

        self._event_log.record(
            event,
            message,
            level=logging.getLevelName(level),
            metadata=metadata,
        )
        logger.log(level, message)


__all__ = [
    "ConnectionState",
    "CycleDecision",
    "CycleOutcome",
    "CycleState",
    "ModeController",
]
