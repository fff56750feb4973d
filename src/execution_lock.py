"""
Execution lock for the host session.

Only one run may drive the host dashboard at a time; a second concurrent
login would invalidate the first session.
"""

import json
import os
from datetime import datetime, timedelta
from typing import Any, Dict, Optional


class ExecutionLock:
    """File-based lock with a timeout after which a stale lock is replaced."""

    def __init__(self, lock_name: str, timeout: int = 3600, lock_dir: str = "."):
        """
        Args:
            lock_name: name of the lock
            timeout: seconds after which an existing lock counts as stale
            lock_dir: directory holding the lock file
        """
        self.lock_name = lock_name
        self.timeout = timeout
        self.lock_file = os.path.join(lock_dir, f".{lock_name}_lock.json")

    def acquire_lock(self, process_id: str, metadata: Optional[Dict[str, Any]] = None) -> bool:
        """Take the lock.

        Returns:
            bool: True when acquired, False while another holder's lock is live
        """
        existing_lock = self._load_lock()

        if existing_lock:
            try:
                lock_time = datetime.fromisoformat(existing_lock.get("timestamp", ""))
            except ValueError:
                lock_time = datetime.min
            if datetime.now() - lock_time < timedelta(seconds=self.timeout):
                print(f"🔒 Lock held by {existing_lock.get('process_id')} since {existing_lock.get('timestamp')}")
                return False
            print(f"⏰ Lock timed out: {existing_lock.get('process_id')}")
            self._remove_lock()

        lock_data = {
            "process_id": process_id,
            "timestamp": datetime.now().isoformat(),
            "timeout": self.timeout,
            "metadata": metadata or {},
        }
        self._save_lock(lock_data)
        print(f"🔒 Lock acquired: {process_id}")
        return True

    def release_lock(self, process_id: str) -> bool:
        existing_lock = self._load_lock()

        if not existing_lock:
            print(f"⚠️ No lock to release: {process_id}")
            return False

        if existing_lock.get("process_id") != process_id:
            print(f"❌ Lock owned by another process: {existing_lock.get('process_id')}")
            return False

        self._remove_lock()
        print(f"🔓 Lock released: {process_id}")
        return True

    def get_lock_info(self) -> Optional[Dict[str, Any]]:
        return self._load_lock()

    def _load_lock(self) -> Optional[Dict[str, Any]]:
        try:
            with open(self.lock_file, "r", encoding="utf-8") as f:
                return json.load(f)
        except (FileNotFoundError, json.JSONDecodeError):
            return None

    def _save_lock(self, lock_data: Dict[str, Any]):
        directory = os.path.dirname(self.lock_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.lock_file, "w", encoding="utf-8") as f:
            json.dump(lock_data, f, ensure_ascii=False, indent=2)

    def _remove_lock(self):
        try:
            os.remove(self.lock_file)
        except FileNotFoundError:
            pass
