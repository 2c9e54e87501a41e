"""NetworkManager access for AP Pop-Up.

Every piece of nmcli-specific text handling lives in this module. The rest of
the package only sees :class:`ConnectionProfile`, :class:`ScanResult` and
:class:`VisibleNetwork` values returned by a :class:`NetworkManagerClient`.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Sequence


WIRELESS_CONNECTION_TYPE = "802-11-wireless"
HOTSPOT_BAND = "bg"
HOTSPOT_CHANNEL = 6
POWERSAVE_DISABLE = "2"


class NetworkManagerError(RuntimeError):
    """Raised when a NetworkManager command fails or times out."""

    def __init__(
        self,
        message: str,
        *,
        command: Sequence[str] | None = None,
        timed_out: bool = False,
    ) -> None:
        super().__init__(message)
        self.command = list(command) if command is not None else None
        self.timed_out = timed_out


class ProfileMode(Enum):
    """Operating mode of a saved WiFi connection."""

    ACCESS_POINT = "ap"
    CLIENT = "infrastructure"

    @classmethod
    def parse(cls, value: str | None) -> "ProfileMode | None":
        if not value:
            return None
        normalized = value.strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        return None


@dataclass(frozen=True, slots=True)
class ConnectionProfile:
    """Snapshot of a saved WiFi connection."""

    name: str
    mode: ProfileMode
    ssid: str
    autoconnect_priority: int = 0
    bound_interface: str | None = None
    ipv4_address: str | None = None
    ipv4_gateway: str | None = None

    @property
    def is_access_point(self) -> bool:
        return self.mode is ProfileMode.ACCESS_POINT

    def to_dict(self) -> dict[str, object | None]:
        return {
            "name": self.name,
            "mode": self.mode.value,
            "ssid": self.ssid,
            "autoconnect_priority": self.autoconnect_priority,
            "bound_interface": self.bound_interface,
            "ipv4_address": self.ipv4_address,
            "ipv4_gateway": self.ipv4_gateway,
        }


@dataclass(frozen=True, slots=True)
class ScanResult:
    """Ordered, de-duplicated set of SSIDs seen in a single scan."""

    ssids: tuple[str, ...] = ()

    @classmethod
    def from_iterable(cls, values: Iterable[str]) -> "ScanResult":
        seen: dict[str, None] = {}
        for value in values:
            if isinstance(value, str) and value:
                seen.setdefault(value, None)
        return cls(tuple(seen))

    def __contains__(self, ssid: object) -> bool:
        return ssid in self.ssids

    def __iter__(self):
        return iter(self.ssids)

    def __len__(self) -> int:
        return len(self.ssids)


def _channel_from_frequency(freq_mhz: float | None) -> int | None:
    """Best-effort conversion from MHz to Wi-Fi channel numbers."""

    if freq_mhz is None or freq_mhz <= 0:
        return None
    # IEEE 802.11 2.4 GHz channels use a 5 MHz spacing starting at 2412 MHz.
    if 2400 <= freq_mhz <= 2500:
        channel = int(round((freq_mhz - 2407) / 5))
        if 1 <= channel <= 14:
            return channel
        return None
    if 4900 <= freq_mhz <= 5900:
        channel = int(round((freq_mhz - 5000) / 5))
        if channel > 0:
            return channel
        return None
    return None


@dataclass(frozen=True, slots=True)
class VisibleNetwork:
    """A network reported by the last scan."""

    ssid: str
    signal: int | None = None
    security: str | None = None
    frequency: float | None = None
    channel: int | None = None

    def to_dict(self) -> dict[str, object | None]:
        return {
            "ssid": self.ssid,
            "signal": self.signal,
            "security": self.security,
            "frequency": self.frequency,
            "channel": self.channel,
        }


class NetworkManagerClient:
    """Verbs the mode controller needs from the network stack."""

    def is_running(self) -> bool:  # pragma: no cover - interface only
        raise NotImplementedError

    def list_wifi_connections(self) -> Sequence[str]:  # pragma: no cover - interface only
        """Return saved WiFi connection names, highest priority first."""

        raise NotImplementedError

    def get_profile(self, name: str) -> ConnectionProfile:  # pragma: no cover - interface only
        raise NotImplementedError

    def active_connection(self, interface: str) -> str | None:  # pragma: no cover - interface only
        raise NotImplementedError

    def connection_up(self, name: str, interface: str | None = None) -> None:  # pragma: no cover - interface only
        raise NotImplementedError

    def connection_down(self, name: str) -> None:  # pragma: no cover - interface only
        raise NotImplementedError

    def delete_connection(self, name: str) -> None:  # pragma: no cover - interface only
        raise NotImplementedError

    def create_hotspot(
        self,
        interface: str,
        name: str,
        ssid: str,
        password: str,
        *,
        band: str = HOTSPOT_BAND,
        channel: int = HOTSPOT_CHANNEL,
    ) -> None:  # pragma: no cover - interface only
        raise NotImplementedError

    def modify_connection(
        self, name: str, settings: Sequence[tuple[str, str]]
    ) -> None:  # pragma: no cover - interface only
        raise NotImplementedError

    def reload_connections(self) -> None:  # pragma: no cover - interface only
        raise NotImplementedError

    def wifi_radio_enabled(self) -> bool:  # pragma: no cover - interface only
        raise NotImplementedError

    def set_wifi_radio(self, enabled: bool) -> None:  # pragma: no cover - interface only
        raise NotImplementedError

    def rescan(self, interface: str) -> None:  # pragma: no cover - interface only
        raise NotImplementedError

    def visible_ssids(self, interface: str) -> ScanResult:  # pragma: no cover - interface only
        raise NotImplementedError

    def visible_networks(self, interface: str) -> Sequence[VisibleNetwork]:  # pragma: no cover - interface only
        raise NotImplementedError

    def connection_ipv4_address(self, name: str) -> str | None:  # pragma: no cover - optional hook
        return None


class NMCLIClient(NetworkManagerClient):
    """Drive NetworkManager through the nmcli command line tool."""

    def __init__(
        self,
        *,
        executable: str = "nmcli",
        timeout: float = 15.0,
        activation_timeout: float = 45.0,
    ) -> None:
        self._executable = executable
        self._timeout = timeout
        self._activation_timeout = activation_timeout

    # ------------------------------- helpers -------------------------------
    def _run(self, args: Sequence[str], *, timeout: float | None = None) -> str:
        command = [self._executable, *args]
        try:
            completed = subprocess.run(
                command,
                check=True,
                capture_output=True,
                text=True,
                timeout=self._timeout if timeout is None else timeout,
            )
        except FileNotFoundError as exc:
            raise NetworkManagerError("nmcli command unavailable", command=command) from exc
        except subprocess.TimeoutExpired as exc:
            raise NetworkManagerError(
                "nmcli command timed out", command=command, timed_out=True
            ) from exc
        except subprocess.CalledProcessError as exc:
            stderr = (exc.stderr or "").strip()
            stdout = (exc.stdout or "").strip()
            raise NetworkManagerError(stderr or stdout or str(exc), command=command) from exc
        return completed.stdout

    @staticmethod
    def _split_fields(line: str) -> list[str]:
        """Split a terse nmcli line on unescaped colons."""

        fields: list[str] = []
        current: list[str] = []
        escaped = False
        for char in line:
            if escaped:
                current.append(char)
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == ":":
                fields.append("".join(current))
                current = []
            else:
                current.append(char)
        if escaped:
            current.append("\\")
        fields.append("".join(current))
        return fields

    def _get_fields(self, fields: Sequence[str], *args: str) -> dict[str, str]:
        """Run ``nmcli -t -f`` in ``key:value`` mode and map the results."""

        output = self._run(["-t", "-f", ",".join(fields), *args])
        values: dict[str, str] = {}
        for line in output.splitlines():
            if ":" not in line:
                continue
            key, value = line.split(":", 1)
            values[key.strip()] = self._unescape_field(value.strip())
        return values

    @staticmethod
    def _unescape_field(value: str) -> str:
        if "\\" not in value:
            return value
        return value.replace("\\\\", "\\").replace("\\:", ":")

    @staticmethod
    def _optional_field(value: str | None) -> str | None:
        """Map nmcli's blank and ``--`` placeholders to ``None``."""

        if value is None:
            return None
        cleaned = value.strip()
        if not cleaned or cleaned == "--":
            return None
        return cleaned

    @staticmethod
    def _parse_int(value: str | None, default: int = 0) -> int:
        if not value:
            return default
        try:
            return int(value.strip())
        except ValueError:
            return default

    # ---------------------------- interface impl ---------------------------
    def is_running(self) -> bool:
        output = self._run(["-t", "-f", "RUNNING", "general"])
        return output.strip().lower() == "running"

    def list_wifi_connections(self) -> list[str]:
        output = self._run(["-t", "-f", "AUTOCONNECT-PRIORITY,NAME,TYPE", "connection", "show"])
        entries: list[tuple[int, str]] = []
        for line in output.splitlines():
            if not line.strip():
                continue
            parts = self._split_fields(line)
            if len(parts) < 3:
                continue
            priority_raw, name, conn_type = parts[0], parts[1], parts[2]
            if conn_type.strip() != WIRELESS_CONNECTION_TYPE or not name:
                continue
            entries.append((self._parse_int(priority_raw), name))
        # Stable sort keeps nmcli's own order for equal priorities.
        entries.sort(key=lambda entry: entry[0], reverse=True)
        return [name for _, name in entries]

    def get_profile(self, name: str) -> ConnectionProfile:
        details = self._get_fields(
            [
                "802-11-wireless.mode",
                "802-11-wireless.ssid",
                "connection.autoconnect-priority",
                "connection.interface-name",
                "ipv4.addresses",
                "ipv4.gateway",
            ],
            "connection",
            "show",
            name,
        )
        mode = ProfileMode.parse(details.get("802-11-wireless.mode"))
        if mode is None:
            raise NetworkManagerError(
                f"Connection {name!r} has unsupported wireless mode "
                f"{details.get('802-11-wireless.mode')!r}"
            )
        addresses = self._optional_field(details.get("ipv4.addresses"))
        return ConnectionProfile(
            name=name,
            mode=mode,
            ssid=details.get("802-11-wireless.ssid", ""),
            autoconnect_priority=self._parse_int(details.get("connection.autoconnect-priority")),
            bound_interface=self._optional_field(details.get("connection.interface-name")),
            # Only the first address is managed here.
            ipv4_address=addresses.split(",")[0].strip() if addresses else None,
            ipv4_gateway=self._optional_field(details.get("ipv4.gateway")),
        )

    def active_connection(self, interface: str) -> str | None:
        output = self._run(["-t", "-f", "NAME,DEVICE", "connection", "show", "--active"])
        for line in output.splitlines():
            if not line.strip():
                continue
            parts = self._split_fields(line)
            if len(parts) < 2:
                continue
            name, device = parts[0], parts[1]
            if device.strip() == interface and name:
                return name
        return None

    def connection_up(self, name: str, interface: str | None = None) -> None:
        args = ["connection", "up", name]
        if interface:
            args.extend(["ifname", interface])
        self._run(args, timeout=self._activation_timeout)

    def connection_down(self, name: str) -> None:
        self._run(["connection", "down", name])

    def delete_connection(self, name: str) -> None:
        self._run(["connection", "delete", name])

    def create_hotspot(
        self,
        interface: str,
        name: str,
        ssid: str,
        password: str,
        *,
        band: str = HOTSPOT_BAND,
        channel: int = HOTSPOT_CHANNEL,
    ) -> None:
        self._run(
            [
                "device",
                "wifi",
                "hotspot",
                "ifname",
                interface,
                "con-name",
                name,
                "ssid",
                ssid,
                "band",
                band,
                "channel",
                str(channel),
                "password",
                password,
            ],
            timeout=self._activation_timeout,
        )

    def modify_connection(self, name: str, settings: Sequence[tuple[str, str]]) -> None:
        args = ["connection", "modify", name]
        for property_name, value in settings:
            args.extend([property_name, value])
        self._run(args)

    def reload_connections(self) -> None:
        self._run(["connection", "reload"])

    def wifi_radio_enabled(self) -> bool:
        output = self._run(["-t", "-f", "WIFI", "radio"])
        return output.strip().lower() == "enabled"

    def set_wifi_radio(self, enabled: bool) -> None:
        self._run(["radio", "wifi", "on" if enabled else "off"])

    def rescan(self, interface: str) -> None:
        try:
            self._run(["device", "wifi", "rescan", "ifname", interface])
        except NetworkManagerError as exc:
            lowered = str(exc).lower()
            if "not authorized" in lowered or "not authorised" in lowered:
                raise NetworkManagerError(
                    "Unable to rescan WiFi networks: not authorized to control networking.",
                    command=exc.command,
                ) from exc
            raise

    def visible_ssids(self, interface: str) -> ScanResult:
        output = self._run(["-t", "-f", "SSID", "device", "wifi", "list", "ifname", interface])
        ssids = []
        for line in output.splitlines():
            fields = self._split_fields(line)
            if fields and fields[0].strip():
                ssids.append(fields[0])
        return ScanResult.from_iterable(ssids)

    def visible_networks(self, interface: str) -> list[VisibleNetwork]:
        output = self._run(
            [
                "-t",
                "-f",
                "SSID,SIGNAL,SECURITY,FREQ",
                "device",
                "wifi",
                "list",
                "ifname",
                interface,
            ]
        )
        networks: list[VisibleNetwork] = []
        for line in output.splitlines():
            if not line.strip():
                continue
            parts = self._split_fields(line)
            while len(parts) < 4:
                parts.append("")
            ssid, signal_raw, security_raw, freq_raw = parts[:4]
            signal = None
            if signal_raw.strip():
                try:
                    signal = int(float(signal_raw.strip()))
                except ValueError:
                    signal = None
            frequency = None
            if freq_raw.strip():
                try:
                    frequency = float(freq_raw.strip().split()[0])
                except ValueError:
                    frequency = None
            networks.append(
                VisibleNetwork(
                    ssid=ssid,
                    signal=signal,
                    security=security_raw.strip() or None,
                    frequency=frequency,
                    channel=_channel_from_frequency(frequency),
                )
            )
        return networks

    def connection_ipv4_address(self, name: str) -> str | None:
        try:
            output = self._run(["-g", "IP4.ADDRESS", "connection", "show", name])
        except NetworkManagerError as exc:
            logging.getLogger(__name__).debug("Unable to read IPv4 address of %s: %s", name, exc)
            return None
        for line in output.splitlines():
            candidate = line.split("|")[0].strip()
            if candidate:
                return candidate.split("/")[0]
        return None


__all__ = [
    "ConnectionProfile",
    "NMCLIClient",
    "NetworkManagerClient",
    "NetworkManagerError",
    "ProfileMode",
    "ScanResult",
    "VisibleNetwork",
]
