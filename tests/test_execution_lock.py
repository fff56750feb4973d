import json
import os
import sys
from datetime import datetime, timedelta

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

from execution_lock import ExecutionLock


def test_lock_is_exclusive_until_released(tmp_path):
    lock = ExecutionLock("session", timeout=3600, lock_dir=str(tmp_path))
    assert lock.acquire_lock("run-1", {"matches": 3})
    assert not lock.acquire_lock("run-2")
    assert lock.get_lock_info()["metadata"] == {"matches": 3}

    assert not lock.release_lock("run-2")
    assert lock.release_lock("run-1")
    assert lock.get_lock_info() is None
    assert lock.acquire_lock("run-2")


def test_stale_lock_is_replaced(tmp_path):
    lock = ExecutionLock("session", timeout=60, lock_dir=str(tmp_path))
    stale = {"process_id": "old", "timestamp": (datetime.now() - timedelta(minutes=5)).isoformat()}
    with open(lock.lock_file, "w", encoding="utf-8") as f:
        json.dump(stale, f)

    assert lock.acquire_lock("new")
    assert lock.get_lock_info()["process_id"] == "new"


def test_corrupt_lock_file_counts_as_absent(tmp_path):
    lock = ExecutionLock("session", lock_dir=str(tmp_path))
    with open(lock.lock_file, "w", encoding="utf-8") as f:
        f.write("{not json")
    assert lock.acquire_lock("run-1")


def test_release_without_lock(tmp_path):
    assert not ExecutionLock("session", lock_dir=str(tmp_path)).release_lock("run-1")
