"""Configuration loading for AP Pop-Up."""
from __future__ import annotations

import ipaddress
import logging
import os
import shlex
from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("/etc/ap_popup.conf")
DEFAULT_LOCK_PATH = Path("/run/ap_popup.lock")

DEFAULT_INTERFACE = "wlan0"
DEFAULT_AP_PROFILE_NAME = "AP_Pop-Up"
DEFAULT_AP_SSID = "AP_Pop-Up"
DEFAULT_AP_PASSWORD = "1234567890"
DEFAULT_AP_CIDR = "192.168.50.5/24"
DEFAULT_AP_GATEWAY = "192.168.50.254"

# Configuration file / environment keys and the fields they populate.
CONFIG_KEYS: dict[str, str] = {
    "WIFI_INTERFACE": "interface",
    "AP_PROFILE_NAME": "ap_profile_name",
    "AP_SSID": "ap_ssid",
    "AP_PASSWORD": "ap_password",
    "AP_CIDR": "ap_cidr",
    "AP_GATEWAY": "ap_gateway",
    "ENABLE_WIFI": "auto_enable_wifi",
    "LOCK_FILE": "lock_path",
    "EVENT_LOG": "event_log_path",
}

_TRUE_VALUES = {"1", "true", "yes", "y", "on"}
_FALSE_VALUES = {"0", "false", "no", "n", "off"}


class ConfigurationError(ValueError):
    """Raised when required settings are missing or invalid."""


def _derive_gateway(cidr: str) -> str | None:
    """Return the ``.254`` host of the CIDR's last octet block."""

    try:
        interface = ipaddress.IPv4Interface(cidr.strip())
    except ValueError:
        return None
    return str(ipaddress.IPv4Address((int(interface.ip) & ~0xFF) | 254))


class APPopupConfig(BaseModel):
    """Settings for one decision cycle."""

    model_config = ConfigDict(frozen=True)

    interface: str = Field(default=DEFAULT_INTERFACE, min_length=1)
    ap_profile_name: str = Field(default=DEFAULT_AP_PROFILE_NAME, min_length=1)
    ap_ssid: str = Field(default=DEFAULT_AP_SSID, min_length=1, max_length=32)
    ap_password: str = Field(default=DEFAULT_AP_PASSWORD, min_length=8, max_length=63)
    ap_cidr: str = DEFAULT_AP_CIDR
    ap_gateway: str = DEFAULT_AP_GATEWAY
    auto_enable_wifi: bool = True
    lock_path: Path = DEFAULT_LOCK_PATH
    event_log_path: Path | None = None

    @model_validator(mode="before")
    @classmethod
    def _fill_gateway(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        if "ap_cidr" not in data and "ap_gateway" not in data:
            return data
        gateway = data.get("ap_gateway")
        if gateway is None or (isinstance(gateway, str) and not gateway.strip()):
            derived = _derive_gateway(str(data.get("ap_cidr", DEFAULT_AP_CIDR)))
            if derived is not None:
                data = {**data, "ap_gateway": derived}
        return data

    @field_validator("interface", "ap_profile_name", "ap_ssid", mode="before")
    @classmethod
    def _strip_required(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("auto_enable_wifi", mode="before")
    @classmethod
    def _parse_flag(cls, value: object) -> object:
        if value is None:
            return True
        if isinstance(value, str):
            normalized = value.strip().lower()
            if not normalized or normalized in _TRUE_VALUES:
                return True
            if normalized in _FALSE_VALUES:
                return False
        return value

    @field_validator("ap_cidr")
    @classmethod
    def _validate_cidr(cls, value: str) -> str:
        cleaned = value.strip()
        if "/" not in cleaned:
            raise ValueError(f"AP_CIDR {value!r} must include a prefix length")
        try:
            interface = ipaddress.IPv4Interface(cleaned)
        except ValueError as exc:
            raise ValueError(f"AP_CIDR {value!r} is not an IPv4 address with prefix") from exc
        return interface.with_prefixlen

    @field_validator("ap_gateway")
    @classmethod
    def _validate_gateway(cls, value: str) -> str:
        try:
            return str(ipaddress.IPv4Address(value.strip()))
        except ValueError as exc:
            raise ValueError(f"AP_GATEWAY {value!r} is not an IPv4 address") from exc

    @field_validator("lock_path", mode="before")
    @classmethod
    def _default_lock_path(cls, value: object) -> object:
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_LOCK_PATH
        return value

    @field_validator("event_log_path", mode="before")
    @classmethod
    def _optional_event_log(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _gateway_in_network(self) -> "APPopupConfig":
        network = ipaddress.IPv4Interface(self.ap_cidr).network
        if ipaddress.IPv4Address(self.ap_gateway) not in network:
            raise ValueError(f"AP_GATEWAY {self.ap_gateway} is outside the AP network {network}")
        return self

    @property
    def ap_address(self) -> str:
        """AP host address without the prefix length."""

        return str(ipaddress.IPv4Interface(self.ap_cidr).ip)


def parse_config_text(text: str) -> dict[str, str]:
    """Parse shell-style ``KEY="value"`` assignments without executing them."""

    values: dict[str, str] = {}
    for number, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        if "=" not in line:
            logger.warning("Ignoring malformed configuration line %d: %s", number, raw_line)
            continue
        key, raw_value = line.split("=", 1)
        try:
            tokens = shlex.split(raw_value)
        except ValueError as exc:
            raise ConfigurationError(
                f"Unable to parse configuration line {number}: {exc}"
            ) from exc
        # The shell assigns only the first word; anything after it is a comment.
        values[key.strip()] = tokens[0] if tokens else ""
    return values


def _collect(values: Mapping[str, str], into: dict[str, object]) -> None:
    for key, field_name in CONFIG_KEYS.items():
        if key in values:
            into[field_name] = values[key]


def load_config(
    path: Path | str | None = DEFAULT_CONFIG_PATH,
    *,
    environ: Mapping[str, str] | None = None,
) -> APPopupConfig:
    """Build the configuration from defaults, the environment and ``path``.

    Later sources win: the configuration file overrides environment
    variables, which override the built-in defaults. A missing file is not an
    error; an unreadable or invalid one is.
    """

    environment = os.environ if environ is None else environ
    raw: dict[str, object] = {}
    _collect(environment, raw)
    if path is not None:
        config_path = Path(path)
        if config_path.exists():
            try:
                text = config_path.read_text(encoding="utf-8")
            except OSError as exc:
                raise ConfigurationError(
                    f"Unable to read configuration file {config_path}: {exc}"
                ) from exc
            _collect(parse_config_text(text), raw)
        else:
            logger.debug("Configuration file %s not found; using defaults", config_path)
    try:
        return APPopupConfig(**raw)
    except ValidationError as exc:
        problems = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error.get("loc", ())) or "config"
            problems.append(f"{location}: {error.get('msg')}")
        raise ConfigurationError("Invalid configuration: " + "; ".join(problems)) from exc


__all__ = [
    "APPopupConfig",
    "ConfigurationError",
    "DEFAULT_CONFIG_PATH",
    "load_config",
    "parse_config_text",
]
