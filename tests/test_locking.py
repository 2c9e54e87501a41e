import os
from pathlib import Path

import pytest

from ap_popup.locking import InstanceLock, InstanceLockError


def test_second_holder_is_refused(tmp_path: Path) -> None:
    path = tmp_path / "run" / "ap_popup.lock"
    first = InstanceLock(path)
    second = InstanceLock(path)

    first.acquire()
    try:
        assert first.locked
        assert path.read_text(encoding="utf-8").strip() == str(os.getpid())
        with pytest.raises(InstanceLockError, match=str(os.getpid())):
            second.acquire()
        assert not second.locked
    finally:
        first.release()

    second.acquire()
    assert second.locked
    second.release()


def test_release_clears_pid_and_is_idempotent(tmp_path: Path) -> None:
    path = tmp_path / "ap_popup.lock"
    lock = InstanceLock(path)

    with lock:
        assert lock.locked
    lock.release()

    assert not lock.locked
    assert path.read_text(encoding="utf-8") == ""
