import os
from typing import Sequence

from selenium import webdriver
from selenium.common.exceptions import NoSuchElementException, TimeoutException, WebDriverException
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.common.by import By
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import Select, WebDriverWait

from claim_workflow import SessionError, StepOutcome, Strategy, TransientWorkflowError


# upper bound for each individual strategy so a long list fails fast
PER_STRATEGY_WAIT = 5.0

_BY = {"css": By.CSS_SELECTOR, "xpath": By.XPATH}


def chrome_options(headless: bool = True) -> Options:
    options = Options()
    options.add_argument("--no-sandbox")
    options.add_argument("--disable-dev-shm-usage")
    options.add_argument("--disable-extensions")
    options.add_argument("--disable-gpu")
    options.add_argument("--disable-blink-features=AutomationControlled")
    options.add_argument("--window-size=1366,768")
    options.add_argument("--lang=en")
    if headless:
        options.add_argument("--headless=new")
    options.add_argument(
        "--user-agent=Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    return options


class SeleniumBrowserDriver:
    """BrowserDriver backed by a Chrome WebDriver session."""

    def __init__(self, driver):
        self.driver = driver

    @classmethod
    def launch(cls, headless: bool = True) -> "SeleniumBrowserDriver":
        print(f"🚀 Launching Chrome (headless={headless})...")
        try:
            return cls(webdriver.Chrome(options=chrome_options(headless)))
        except WebDriverException as e:
            raise SessionError(f"Browser launch failed: {e}") from e

    def _find(self, strategies: Sequence[Strategy], timeout: float):
        wait_each = max(0.5, min(timeout, PER_STRATEGY_WAIT))
        for strategy in strategies:
            try:
                element = WebDriverWait(self.driver, wait_each).until(
                    EC.presence_of_element_located((_BY[strategy.how], strategy.value))
                )
                return element, strategy
            except TimeoutException:
                continue
            except WebDriverException as e:
                raise TransientWorkflowError(f"Browser error while locating {strategy}: {e}") from e
        return None, None

    def navigate(self, url: str, timeout: float) -> None:
        try:
            self.driver.set_page_load_timeout(timeout)
            self.driver.get(url)
        except TimeoutException as e:
            raise TransientWorkflowError(f"Navigation to {url} timed out") from e
        except WebDriverException as e:
            raise TransientWorkflowError(f"Navigation to {url} failed: {e}") from e

    def current_url(self) -> str:
        return self.driver.current_url or ""

    def page_text(self) -> str:
        try:
            return self.driver.find_element(By.TAG_NAME, "body").text
        except NoSuchElementException:
            return ""

    def locate(self, strategies: Sequence[Strategy], timeout: float) -> StepOutcome:
        element, strategy = self._find(strategies, timeout)
        if element is None:
            return StepOutcome(False)
        return StepOutcome(True, strategy, element.text or "")

    def click(self, strategies: Sequence[Strategy], timeout: float) -> StepOutcome:
        element, strategy = self._find(strategies, timeout)
        if element is None:
            return StepOutcome(False)
        try:
            element.click()
        except WebDriverException:
            # overlays intercept native clicks now and then
            self.driver.execute_script("arguments[0].click();", element)
        return StepOutcome(True, strategy)

    def fill(self, strategies: Sequence[Strategy], value: str, timeout: float) -> StepOutcome:
        element, strategy = self._find(strategies, timeout)
        if element is None:
            return StepOutcome(False)
        try:
            element.clear()
            element.send_keys(value)
        except WebDriverException as e:
            raise TransientWorkflowError(f"Could not type into {strategy}: {e}") from e
        return StepOutcome(True, strategy)

    def select(self, strategies: Sequence[Strategy], option: str, timeout: float) -> StepOutcome:
        element, strategy = self._find(strategies, timeout)
        if element is None:
            return StepOutcome(False)
        dropdown = Select(element)
        try:
            dropdown.select_by_value(option)
        except NoSuchElementException:
            try:
                dropdown.select_by_visible_text(option.capitalize())
            except NoSuchElementException:
                print(f"  ⚠️ Option '{option}' not available in {strategy}")
                return StepOutcome(False, strategy)
        return StepOutcome(True, strategy)

    def upload(self, strategies: Sequence[Strategy], file_path: str, timeout: float) -> StepOutcome:
        element, strategy = self._find(strategies, timeout)
        if element is None:
            return StepOutcome(False)
        try:
            element.send_keys(os.path.abspath(file_path))
        except WebDriverException as e:
            raise TransientWorkflowError(f"File upload failed: {e}") from e
        return StepOutcome(True, strategy)

    def scroll(self, fraction: float) -> None:
        self.driver.execute_script(f"window.scrollTo(0, document.body.scrollHeight * {float(fraction)});")

    def screenshot(self, path: str) -> bool:
        return bool(self.driver.save_screenshot(path))

    def close(self) -> None:
        self.driver.quit()
