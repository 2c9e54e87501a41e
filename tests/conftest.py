from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from ap_popup.config import APPopupConfig
from ap_popup.network import (
    ConnectionProfile,
    NetworkManagerClient,
    NetworkManagerError,
    ProfileMode,
    ScanResult,
    VisibleNetwork,
)

MUTATING_CALLS = {
    "connection_up",
    "connection_down",
    "delete_connection",
    "create_hotspot",
    "modify_connection",
    "reload_connections",
    "set_wifi_radio",
}


class FakeNetworkManager(NetworkManagerClient):
    """In-memory NetworkManager recording every call it receives."""

    def __init__(self) -> None:
        self.profiles: dict[str, ConnectionProfile] = {}
        self.unreadable: set[str] = set()
        self.active: dict[str, str] = {}
        self.radio_enabled = True
        self.radio_error: str | None = None
        self.visible: list[str] = []
        self.networks: list[VisibleNetwork] = []
        self.settings: dict[str, list[tuple[str, str]]] = {}
        self.up_failures: dict[str, int] = {}
        self.always_fail_up: set[str] = set()
        self.list_error: str | None = None
        self.rescan_error: str | None = None
        self.scan_error: str | None = None
        self.running = True
        self.calls: list[tuple[object, ...]] = []

    # ------------------------------ test helpers ---------------------------
    def add_client(self, name: str, ssid: str | None = None, priority: int = 0) -> ConnectionProfile:
        profile = ConnectionProfile(
            name=name,
            mode=ProfileMode.CLIENT,
            ssid=ssid if ssid is not None else name,
            autoconnect_priority=priority,
        )
        self.profiles[name] = profile
        return profile

    def add_access_point(
        self,
        name: str,
        ssid: str,
        priority: int = 0,
        *,
        ipv4_address: str | None = None,
        ipv4_gateway: str | None = None,
    ) -> ConnectionProfile:
        profile = ConnectionProfile(
            name=name,
            mode=ProfileMode.ACCESS_POINT,
            ssid=ssid,
            autoconnect_priority=priority,
            ipv4_address=ipv4_address,
            ipv4_gateway=ipv4_gateway,
        )
        self.profiles[name] = profile
        return profile

    def calls_to(self, method: str) -> list[tuple[object, ...]]:
        return [call for call in self.calls if call[0] == method]

    @property
    def mutations(self) -> list[tuple[object, ...]]:
        return [call for call in self.calls if call[0] in MUTATING_CALLS]

    # ---------------------------- interface impl ---------------------------
    def is_running(self) -> bool:
        self.calls.append(("is_running",))
        return self.running

    def list_wifi_connections(self) -> list[str]:
        self.calls.append(("list_wifi_connections",))
        if self.list_error:
            raise NetworkManagerError(self.list_error)
        ordered = sorted(
            self.profiles.values(),
            key=lambda profile: profile.autoconnect_priority,
            reverse=True,
        )
        return [profile.name for profile in ordered]

    def get_profile(self, name: str) -> ConnectionProfile:
        self.calls.append(("get_profile", name))
        if name in self.unreadable or name not in self.profiles:
            raise NetworkManagerError(f"Error: {name} - no such connection profile.")
        return self.profiles[name]

    def active_connection(self, interface: str) -> str | None:
        self.calls.append(("active_connection", interface))
        return self.active.get(interface)

    def connection_up(self, name: str, interface: str | None = None) -> None:
        self.calls.append(("connection_up", name, interface))
        if name not in self.profiles:
            raise NetworkManagerError(f"Error: unknown connection '{name}'.")
        if name in self.always_fail_up:
            raise NetworkManagerError(f"Error: Connection activation failed: {name}")
        remaining = self.up_failures.get(name, 0)
        if remaining > 0:
            self.up_failures[name] = remaining - 1
            raise NetworkManagerError(f"Error: Connection activation failed: {name}")
        self.active[interface or "wlan0"] = name

    def connection_down(self, name: str) -> None:
        self.calls.append(("connection_down", name))
        for interface, active in list(self.active.items()):
            if active == name:
                del self.active[interface]

    def delete_connection(self, name: str) -> None:
        self.calls.append(("delete_connection", name))
        if name not in self.profiles:
            raise NetworkManagerError(f"Error: unknown connection '{name}'.")
        del self.profiles[name]
        self.settings.pop(name, None)

    def create_hotspot(
        self,
        interface: str,
        name: str,
        ssid: str,
        password: str,
        *,
        band: str = "bg",
        channel: int = 6,
    ) -> None:
        self.calls.append(("create_hotspot", interface, name, ssid, password, band, channel))
        self.add_access_point(name, ssid)

    def modify_connection(self, name: str, settings) -> None:
        self.calls.append(("modify_connection", name, tuple(settings)))
        self.settings.setdefault(name, []).extend(settings)
        values = dict(settings)
        profile = self.profiles.get(name)
        if profile is not None:
            self.profiles[name] = replace(
                profile,
                ipv4_address=values.get("ipv4.addresses", profile.ipv4_address),
                ipv4_gateway=values.get("ipv4.gateway", profile.ipv4_gateway),
            )

    def reload_connections(self) -> None:
        self.calls.append(("reload_connections",))

    def wifi_radio_enabled(self) -> bool:
        self.calls.append(("wifi_radio_enabled",))
        if self.radio_error:
            raise NetworkManagerError(self.radio_error)
        return self.radio_enabled

    def set_wifi_radio(self, enabled: bool) -> None:
        self.calls.append(("set_wifi_radio", enabled))
        self.radio_enabled = enabled

    def rescan(self, interface: str) -> None:
        self.calls.append(("rescan", interface))
        if self.rescan_error:
            raise NetworkManagerError(self.rescan_error)

    def visible_ssids(self, interface: str) -> ScanResult:
        self.calls.append(("visible_ssids", interface))
        if self.scan_error:
            raise NetworkManagerError(self.scan_error)
        return ScanResult.from_iterable(self.visible)

    def visible_networks(self, interface: str) -> list[VisibleNetwork]:
        self.calls.append(("visible_networks", interface))
        if self.scan_error:
            raise NetworkManagerError(self.scan_error)
        return list(self.networks)

    def connection_ipv4_address(self, name: str) -> str | None:
        for property_name, value in self.settings.get(name, []):
            if property_name == "ipv4.addresses":
                return value.split("/")[0]
        return None


@pytest.fixture
def fake_nm() -> FakeNetworkManager:
    return FakeNetworkManager()


@pytest.fixture
def config(tmp_path: Path) -> APPopupConfig:
    return APPopupConfig(
        interface="wlan0",
        ap_profile_name="AP_Pop-Up",
        ap_ssid="PopUpAP",
        ap_password="supersecret",
        ap_cidr="192.168.50.5/24",
        ap_gateway="192.168.50.254",
        lock_path=tmp_path / "ap_popup.lock",
    )
