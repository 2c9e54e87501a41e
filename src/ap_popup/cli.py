"""Command-line entry point for AP Pop-Up."""
from __future__ import annotations

import argparse
import json
import logging
import shutil
import sys
import time
from pathlib import Path
from typing import Callable, Sequence

from .config import DEFAULT_CONFIG_PATH, APPopupConfig, ConfigurationError, load_config
from .controller import ConnectionState, ModeController
from .event_log import EventLog
from .locking import InstanceLock, InstanceLockError
from .network import NetworkManagerClient, NetworkManagerError, NMCLIClient
from .preflight import DependencyError, run_preflight
from .scanner import SCAN_SETTLE_DELAY, rank_visible_networks, rescan
from .version import APP_VERSION

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(asctime)s] %(levelname)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

DESCRIPTION = """\
Keep this device reachable over WiFi.

Default behaviour: stay on an active client connection; otherwise connect to
the highest-priority known network in range, or start the Access Point when
none is available. Run periodically (for example every two minutes from a
systemd timer).
"""


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid integer value: {value!r}") from exc
    if number < 1:
        raise argparse.ArgumentTypeError("must be at least 1")
    return number


def build_parser() -> argparse.ArgumentParser:
    """Return the argument parser for the ``ap-popup`` command."""

    parser = argparse.ArgumentParser(
        prog="ap-popup",
        description=DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "-a",
        "--start-ap",
        action="store_true",
        help="Force activation of the Access Point regardless of the current state.",
    )
    mode.add_argument(
        "--list-networks",
        action="store_true",
        help="List visible networks, strongest signal first, and exit.",
    )
    mode.add_argument(
        "--history",
        type=_positive_int,
        metavar="N",
        help="Show the last N journal entries and exit.",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help=f"Configuration file (default: {DEFAULT_CONFIG_PATH}).",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit results as JSON for scripting.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {APP_VERSION}")
    return parser


def configure_logging(verbose: bool = False, *, json_output: bool = False) -> None:
    """Send timestamped log lines to standard output for the service supervisor.

    With ``json_output`` the log goes to standard error so standard output
    carries only the JSON document.
    """

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        stream=sys.stderr if json_output else sys.stdout,
    )


def _list_networks(
    client: NetworkManagerClient,
    config: APPopupConfig,
    *,
    as_json: bool,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    rescan(client, config.interface, settle_delay=SCAN_SETTLE_DELAY, sleep=sleep)
    try:
        networks = rank_visible_networks(client.visible_networks(config.interface))
    except NetworkManagerError as exc:
        logger.error("Unable to list WiFi networks: %s", exc)
        return 1
    if as_json:
        json.dump([network.to_dict() for network in networks], sys.stdout)
        sys.stdout.write("\n")
        return 0
    if not networks:
        print("No WiFi networks detected. Ensure WiFi is enabled and try again.")
        return 0
    width = max(len("SSID"), *(len(network.ssid) for network in networks))
    print(f"{'SSID':<{width}}  SIGNAL  CHANNEL  SECURITY")
    for network in networks:
        signal = "" if network.signal is None else str(network.signal)
        channel = "" if network.channel is None else str(network.channel)
        print(f"{network.ssid:<{width}}  {signal:>6}  {channel:>7}  {network.security or ''}")
    return 0


def _show_history(config: APPopupConfig, limit: int, *, as_json: bool) -> int:
    if config.event_log_path is None:
        print("Event journal is disabled; set EVENT_LOG in the configuration to enable it.")
        return 0
    entries = EventLog(config.event_log_path).tail(limit)
    if as_json:
        json.dump([entry.to_dict() for entry in entries], sys.stdout)
        sys.stdout.write("\n")
        return 0
    for entry in entries:
        stamp = time.strftime(LOG_DATE_FORMAT, time.localtime(entry.timestamp))
        print(f"[{stamp}] {entry.level}: {entry.message}")
    return 0


def run(
    argv: Sequence[str] | None = None,
    *,
    client: NetworkManagerClient | None = None,
    which: Callable[[str], str | None] = shutil.which,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Execute one invocation with *argv* arguments and return the exit code."""

    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose, json_output=args.json)

    try:
        config = load_config(args.config)
    except ConfigurationError as exc:
        logger.error("%s", exc)
        return 1

    if args.history is not None:
        return _show_history(config, args.history, as_json=args.json)

    client = client or NMCLIClient()
    try:
        run_preflight(client, which=which)
    except DependencyError as exc:
        logger.error("%s", exc)
        return 1

    if args.list_networks:
        return _list_networks(client, config, as_json=args.json, sleep=sleep)

    logger.info("Starting WiFi and Access Point controller...")
    lock = InstanceLock(config.lock_path)
    try:
        lock.acquire()
    except InstanceLockError as exc:
        logger.warning("Skipping this run: %s", exc)
        return 0
    except OSError as exc:
        logger.error("Unable to create lock file %s: %s", config.lock_path, exc)
        return 1
    try:
        controller = ModeController(client, config, sleep=sleep)
        outcome = controller.run_cycle(force_ap=args.start_ap)
    finally:
        lock.release()

    logger.info("Current WiFi profile: %s", outcome.profile or "none")
    logger.info("Is this a local AP? %s", "y" if outcome.state is ConnectionState.AP_ACTIVE else "n")
    if args.json:
        json.dump(outcome.to_dict(), sys.stdout)
        sys.stdout.write("\n")
    if not outcome.success:
        logger.error("Execution finished without a working connection.")
        return 1
    logger.info("Execution complete.")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point used by the ``ap-popup`` console script."""

    return run(argv)


__all__ = ["build_parser", "configure_logging", "run", "main"]


if __name__ == "__main__":  # pragma: no cover - module behaviour
    sys.exit(main())
