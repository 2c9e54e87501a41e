from ap_popup.network import ConnectionProfile, ProfileMode, ScanResult, VisibleNetwork
from ap_popup.scanner import (
    match_known_networks,
    rank_visible_networks,
    rescan,
    scan_for_candidates,
)


def _client(name: str, ssid: str | None = None, priority: int = 0) -> ConnectionProfile:
    return ConnectionProfile(
        name=name,
        mode=ProfileMode.CLIENT,
        ssid=ssid or name,
        autoconnect_priority=priority,
    )


def test_match_keeps_priority_order() -> None:
    profiles = [_client("Home", priority=10), _client("Work", priority=5)]

    matched = match_known_networks(profiles, ["Work", "Guest"])

    assert [profile.name for profile in matched] == ["Work"]


def test_match_uses_ssid_not_profile_name() -> None:
    profiles = [
        _client("Office upstairs", ssid="CorpNet", priority=3),
        _client("Office lobby", ssid="CorpGuest", priority=2),
        _client("Home", priority=1),
    ]

    matched = match_known_networks(profiles, ScanResult.from_iterable(["Home", "CorpNet", "CorpGuest"]))

    assert [profile.name for profile in matched] == ["Office upstairs", "Office lobby", "Home"]


def test_rescan_failure_still_settles(fake_nm) -> None:
    fake_nm.rescan_error = "Error: Scanning not allowed while in AP mode."
    sleeps: list[float] = []

    rescan(fake_nm, "wlan0", settle_delay=2.0, sleep=sleeps.append)

    assert sleeps == [2.0]


def test_scan_for_candidates_reads_cached_results_after_rescan_error(fake_nm) -> None:
    fake_nm.rescan_error = "Error: device busy"
    fake_nm.visible = ["Work", "Guest"]
    profiles = [_client("Home", priority=10), _client("Work", priority=5)]

    scan = scan_for_candidates(fake_nm, "wlan0", profiles, settle_delay=0)

    assert not scan.failed
    assert scan.known_network_in_range
    assert [profile.name for profile in scan.candidates] == ["Work"]
    assert list(scan.visible) == ["Work", "Guest"]


def test_scan_failure_is_distinguished_from_empty_scan(fake_nm) -> None:
    profiles = [_client("Home")]

    empty = scan_for_candidates(fake_nm, "wlan0", profiles, settle_delay=0)
    fake_nm.scan_error = "Error: scanning failed"
    failed = scan_for_candidates(fake_nm, "wlan0", profiles, settle_delay=0)

    assert empty.failed is False
    assert empty.candidates == ()
    assert failed.failed is True
    assert failed.candidates == ()


def test_rank_visible_networks_collapses_duplicates() -> None:
    networks = [
        VisibleNetwork(ssid="Cafe", signal=40),
        VisibleNetwork(ssid="Home", signal=55),
        VisibleNetwork(ssid="", signal=99),
        VisibleNetwork(ssid="Home", signal=80),
        VisibleNetwork(ssid="Mystery", signal=None),
    ]

    ranked = rank_visible_networks(networks)

    assert [(network.ssid, network.signal) for network in ranked] == [
        ("Home", 80),
        ("Cafe", 40),
        ("Mystery", None),
    ]
