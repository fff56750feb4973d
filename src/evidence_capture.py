import os
import re
from datetime import datetime
from typing import List, Optional


class EvidenceCapture:
    """Best-effort page snapshots for failed steps.

    A capture failure is logged and swallowed so it never hides the error
    being diagnosed.
    """

    def __init__(self, driver, directory: str = "failure-screenshots"):
        self.driver = driver
        self.directory = directory
        self.captured: List[str] = []

    def _filename(self, stage_tag: str) -> str:
        safe_tag = re.sub(r"[^A-Za-z0-9_.-]+", "_", stage_tag or "unknown")
        timestamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S-%f")
        return f"failure_{safe_tag}_{timestamp}.png"

    def capture(self, stage_tag: str) -> Optional[str]:
        if self.driver is None:
            return None
        try:
            os.makedirs(self.directory, exist_ok=True)
            path = os.path.join(self.directory, self._filename(stage_tag))
            if not self.driver.screenshot(path):
                print(f"  ⚠️ Failure screenshot not written for {stage_tag}")
                return None
        except Exception as e:
            print(f"  ⚠️ Failed to capture failure screenshot ({stage_tag}): {e}")
            return None
        self.captured.append(path)
        print(f"  📸 Failure screenshot saved: {os.path.basename(path)}")
        return path
