import os
import sys
from unittest.mock import MagicMock

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

from evidence_capture import EvidenceCapture


def test_capture_names_file_after_stage(tmp_path):
    driver = MagicMock()
    driver.screenshot.return_value = True
    capture = EvidenceCapture(driver, str(tmp_path / "shots"))

    path = capture.capture("submit_T2_failed")
    assert os.path.basename(path).startswith("failure_submit_T2_failed_")
    assert path.endswith(".png")
    driver.screenshot.assert_called_once_with(path)
    assert capture.captured == [path]


def test_capture_sanitizes_tag(tmp_path):
    driver = MagicMock()
    driver.screenshot.return_value = True
    path = EvidenceCapture(driver, str(tmp_path)).capture("fill form/T 1")
    assert "fill_form_T_1" in os.path.basename(path)


def test_capture_failure_is_swallowed(tmp_path):
    driver = MagicMock()
    driver.screenshot.side_effect = RuntimeError("browser gone")
    capture = EvidenceCapture(driver, str(tmp_path))
    assert capture.capture("submit_T2_failed") is None
    assert capture.captured == []


def test_capture_without_driver_or_image(tmp_path):
    assert EvidenceCapture(None, str(tmp_path)).capture("login_failed") is None

    driver = MagicMock()
    driver.screenshot.return_value = False
    assert EvidenceCapture(driver, str(tmp_path)).capture("login_failed") is None
