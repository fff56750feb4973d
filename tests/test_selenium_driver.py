import os
import sys
import unittest
from unittest.mock import MagicMock, patch

from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.common.by import By

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

from claim_workflow import SessionError, TransientWorkflowError, css, xpath
from selenium_driver import SeleniumBrowserDriver, chrome_options


class TestSeleniumBrowserDriver(unittest.TestCase):

    def setUp(self):
        self.webdriver = MagicMock()
        self.driver = SeleniumBrowserDriver(self.webdriver)

    def test_chrome_options_headless_flag(self):
        self.assertIn("--headless=new", chrome_options(True).arguments)
        self.assertNotIn("--headless=new", chrome_options(False).arguments)
        self.assertIn("--no-sandbox", chrome_options(False).arguments)

    @patch("selenium_driver.webdriver.Chrome")
    def test_launch_failure_is_session_error(self, mock_chrome):
        mock_chrome.side_effect = WebDriverException("chrome not found")
        with self.assertRaises(SessionError):
            SeleniumBrowserDriver.launch(headless=True)

    def test_navigation_timeout_is_transient(self):
        self.webdriver.get.side_effect = TimeoutException()
        with self.assertRaises(TransientWorkflowError):
            self.driver.navigate("https://turo.com/trips/T1", 30)
        self.webdriver.set_page_load_timeout.assert_called_once_with(30)

    @patch("selenium_driver.WebDriverWait")
    def test_strategies_tried_in_order(self, mock_wait):
        element = MagicMock(text="Confirmation #ABC12345")
        mock_wait.return_value.until.side_effect = [TimeoutException(), element]
        strategies = [css(".success-message"), xpath("//div[@class='confirmation']")]

        outcome = self.driver.locate(strategies, 30)
        self.assertTrue(outcome.ok)
        self.assertEqual(outcome.strategy, strategies[1])
        self.assertEqual(outcome.text, "Confirmation #ABC12345")

    @patch("selenium_driver.WebDriverWait")
    def test_nothing_found(self, mock_wait):
        mock_wait.return_value.until.side_effect = TimeoutException()
        self.assertFalse(self.driver.click([css("#missing")], 30).ok)

    @patch("selenium_driver.WebDriverWait")
    def test_fill_and_upload(self, mock_wait):
        element = MagicMock()
        mock_wait.return_value.until.return_value = element

        self.assertTrue(self.driver.fill([css("#amount")], "16.00", 30).ok)
        element.clear.assert_called_once()
        element.send_keys.assert_called_with("16.00")

        self.assertTrue(self.driver.upload([css('input[type="file"]')], "e1.png", 30).ok)
        element.send_keys.assert_called_with(os.path.abspath("e1.png"))

    @patch("selenium_driver.WebDriverWait")
    def test_intercepted_click_falls_back_to_script(self, mock_wait):
        element = MagicMock()
        element.click.side_effect = WebDriverException("element click intercepted")
        mock_wait.return_value.until.return_value = element

        self.assertTrue(self.driver.click([css("button")], 30).ok)
        self.webdriver.execute_script.assert_called_once_with("arguments[0].click();", element)

    def test_page_text_reads_body(self):
        self.webdriver.find_element.return_value = MagicMock(text="Trip T1")
        self.assertEqual(self.driver.page_text(), "Trip T1")
        self.webdriver.find_element.assert_called_once_with(By.TAG_NAME, "body")


if __name__ == "__main__":
    unittest.main()
