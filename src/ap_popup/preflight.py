"""Checks that must pass before any network mutation."""

from __future__ import annotations

import shutil
from typing import Callable, Iterable

from .network import NetworkManagerClient, NetworkManagerError

REQUIRED_COMMANDS: tuple[str, ...] = ("nmcli",)

INSTALL_HINT = "e.g., on Debian: sudo apt install network-manager"


class DependencyError(RuntimeError):
    """Raised when a required external tool or service is unavailable."""


def check_commands(
    commands: Iterable[str] = REQUIRED_COMMANDS,
    *,
    which: Callable[[str], str | None] = shutil.which,
) -> None:
    missing = [command for command in commands if which(command) is None]
    if missing:
        names = ", ".join(f"'{command}'" for command in missing)
        raise DependencyError(
            f"Command {names} is required but not found. Install it and try again ({INSTALL_HINT})."
        )


def check_network_manager(client: NetworkManagerClient) -> None:
    try:
        running = client.is_running()
    except NetworkManagerError as exc:
        raise DependencyError(f"Unable to query NetworkManager: {exc}") from exc
    if not running:
        raise DependencyError("NetworkManager is not running.")


def run_preflight(
    client: NetworkManagerClient,
    *,
    which: Callable[[str], str | None] = shutil.which,
) -> None:
    """Raise :class:`DependencyError` unless the host can run a cycle."""

    check_commands(which=which)
    check_network_manager(client)


__all__ = [
    "DependencyError",
    "REQUIRED_COMMANDS",
    "check_commands",
    "check_network_manager",
    "run_preflight",
]
