"""
Claim-filing workflow on the hosting platform.

The platform has no API for reimbursement claims, so every step drives the
host dashboard through a ``BrowserDriver``. Each UI element is described by a
prioritized list of ``Strategy`` objects; the driver tries them in order and
reports which one worked. This module owns *what* to click and fill, the
driver owns *how*.

Errors raised here are classified for the submitter:
- ``TransientWorkflowError``: worth retrying (timeouts, rate limits,
  elements that have not rendered yet)
- ``FatalWorkflowError``: retrying will not help for this match
- ``SessionError``: the whole run cannot continue
"""

import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol, Sequence

from toll_models import Credentials, Match


class WorkflowError(Exception):
    transient = False


class TransientWorkflowError(WorkflowError):
    transient = True


class FatalWorkflowError(WorkflowError):
    transient = False


class SessionError(WorkflowError):
    transient = False


_TRANSIENT_HINTS = ("rate limit", "too many requests", "429", "timeout", "timed out")


def classify_error(exc: BaseException) -> str:
    """'transient' or 'fatal' for any exception raised inside a workflow step."""
    if isinstance(exc, WorkflowError):
        return "transient" if exc.transient else "fatal"
    if isinstance(exc, TimeoutError):
        return "transient"
    text = str(exc).lower()
    if any(hint in text for hint in _TRANSIENT_HINTS):
        return "transient"
    return "fatal"


@dataclass(frozen=True)
class Strategy:
    how: str  # css|xpath
    value: str

    def __str__(self) -> str:
        return f"{self.how}:{self.value}"


def css(selector: str) -> Strategy:
    return Strategy("css", selector)


def xpath(expression: str) -> Strategy:
    return Strategy("xpath", expression)


def with_text(tag: str, text: str) -> Strategy:
    return xpath(f"//{tag}[contains(normalize-space(.), '{text}')]")


@dataclass(frozen=True)
class StepOutcome:
    ok: bool
    strategy: Optional[Strategy] = None
    text: str = ""


class BrowserDriver(Protocol):
    """Capabilities the workflow needs from a browser session.

    Element-finding methods return ``StepOutcome(ok=False)`` when no strategy
    matches; they raise ``TransientWorkflowError`` on timeouts or lost
    connections.
    """

    def navigate(self, url: str, timeout: float) -> None:
        ...

    def current_url(self) -> str:
        ...

    def page_text(self) -> str:
        ...

    def locate(self, strategies: Sequence[Strategy], timeout: float) -> StepOutcome:
        ...

    def click(self, strategies: Sequence[Strategy], timeout: float) -> StepOutcome:
        ...

    def fill(self, strategies: Sequence[Strategy], value: str, timeout: float) -> StepOutcome:
        ...

    def select(self, strategies: Sequence[Strategy], option: str, timeout: float) -> StepOutcome:
        ...

    def upload(self, strategies: Sequence[Strategy], file_path: str, timeout: float) -> StepOutcome:
        ...

    def scroll(self, fraction: float) -> None:
        ...

    def screenshot(self, path: str) -> bool:
        ...

    def close(self) -> None:
        ...


EMAIL_FIELD = [css('input[type="email"]'), css('input[name="email"]'), css("#email"),
               css('input[placeholder*="mail" i]')]
PASSWORD_FIELD = [css('input[type="password"]')]
LOGIN_BUTTON = [css('button[type="submit"]'), with_text("button", "Log in"),
                with_text("button", "Sign in"), css(".login-button")]
CAPTCHA = [css(".captcha"), css(".recaptcha"), css("#captcha"), css('[class*="captcha"]'),
           css('iframe[src*="recaptcha"]')]

CLAIM_ENTRY = [
    with_text("a", "Charge incidents"),
    with_text("a", "Charge Incidents"),
    with_text("a", "Request reimbursement"),
    with_text("a", "Add charges"),
    with_text("button", "Charge incidents"),
    with_text("button", "Request reimbursement"),
    css(".charge-incidents"),
    css(".incident-button"),
    css('[class*="incident"]'),
]
INCIDENT_TYPE = [css('select[name*="type"]'), css('select[name*="incident"]'), css("#incident-type"),
                 css(".incident-type select")]
AMOUNT_FIELD = [css('input[name*="amount"]'), css('input[type="number"]'), css('input[placeholder*="amount" i]'),
                css("#amount"), css(".amount input")]
DESCRIPTION_FIELD = [css('textarea[name*="description"]'), css('textarea[placeholder*="description" i]'),
                     css("#description"), css(".description textarea"), css('input[name*="description"]')]
LOCATION_FIELD = [css('input[name*="location"]'), css('input[placeholder*="location" i]'), css("#toll-location"),
                  css(".location input")]
FILE_INPUT = [css('input[type="file"]'), css('input[accept*="image"]'), css(".file-upload input"),
              css(".upload-input"), css('[class*="upload"] input[type="file"]')]
UPLOAD_BUTTON = [with_text("button", "Upload"), with_text("button", "Choose file"), with_text("button", "Add file"),
                 css(".upload-button"), css(".file-upload-button")]
SUBMIT_BUTTON = [css('button[type="submit"]'), with_text("button", "Submit"), with_text("button", "Send request"),
                 with_text("button", "Submit request"), css('input[type="submit"]'), css(".submit-button"),
                 css(".submit-btn")]
SUCCESS_SIGNAL = [css(".success-message"), css(".confirmation"), css(".alert-success"),
                  xpath("//*[contains(translate(text(), 'SUBMITED', 'submited'), 'submitted')]"),
                  xpath("//*[contains(translate(text(), 'CONFIRMED', 'confirmed'), 'confirmed')]")]
ERROR_SIGNAL = [css(".error-message"), css(".alert-error"), css(".alert-danger"), css(".validation-error")]


def trip_link_strategies(trip_id: str) -> List[Strategy]:
    return [
        css(f'a[href*="{trip_id}"]'),
        css(f'[data-trip-id="{trip_id}"]'),
        xpath(f"//*[contains(@class, 'trip-card') and contains(., '{trip_id}')]"),
        xpath(f"//*[contains(@class, 'trip-item') and contains(., '{trip_id}')]"),
    ]


_CONFIRMATION_PATTERNS = [
    re.compile(r"confirmation\s*[#:]?\s*([a-zA-Z0-9]+)", re.IGNORECASE),
    re.compile(r"reference\s*[#:]?\s*([a-zA-Z0-9]+)", re.IGNORECASE),
    re.compile(r"\bid\s*[#:]?\s*([a-zA-Z0-9]+)", re.IGNORECASE),
    re.compile(r"\b(?=[a-zA-Z]*[0-9])([a-zA-Z0-9]{8,})\b"),
]


def extract_confirmation_id(message: Optional[str]) -> Optional[str]:
    if not message:
        return None
    for pattern in _CONFIRMATION_PATTERNS:
        m = pattern.search(message)
        if m:
            return m.group(1)
    return None


def build_claim_description(match: Match) -> str:
    return f"Toll charge for {match.toll.location} on {match.toll.date}. Trip: {match.trip_id}"


@dataclass(frozen=True)
class SubmitOutcome:
    success: bool
    message: str
    confirmation_id: Optional[str] = None


class HostClaimWorkflow:
    """Steps of one reimbursement claim on the host dashboard.

    ``pace`` is called between discrete UI actions; the submitter supplies
    its politeness delay there.
    """

    def __init__(
        self,
        driver: BrowserDriver,
        base_url: str = "https://turo.com",
        step_timeout: float = 30.0,
        pace: Optional[Callable[[], None]] = None,
        captcha_wait: float = 30.0,
        sleeper: Optional[Callable[[float], None]] = None,
        capture: Optional[Callable[[str], Optional[str]]] = None,
    ):
        self.driver = driver
        self.base_url = base_url.rstrip("/")
        self.step_timeout = step_timeout
        self.pace = pace or (lambda: None)
        self.captcha_wait = captcha_wait
        self.sleeper = sleeper
        self.capture = capture

    # --- session ---------------------------------------------------------

    def login(self, credentials: Credentials) -> None:
        print("🔐 Logging in to host dashboard...")
        try:
            self.driver.navigate(f"{self.base_url}/login", self.step_timeout)
            self.pace()

            if not self.driver.fill(EMAIL_FIELD, credentials.identifier, self.step_timeout).ok:
                raise SessionError("Could not locate email input field")
            self.pace()
            if not self.driver.fill(PASSWORD_FIELD, credentials.secret, self.step_timeout).ok:
                raise SessionError("Could not locate password input field")
            self.pace()

            self._handle_captcha()

            if not self.driver.click(LOGIN_BUTTON, self.step_timeout).ok:
                raise SessionError("Could not locate login button")
            self.pace()

            url = self.driver.current_url().lower()
            if "login" in url or "sign-in" in url:
                raise SessionError("Login failed - still on login page")
        except SessionError:
            self._capture("login_failed")
            raise
        except WorkflowError as e:
            self._capture("login_failed")
            raise SessionError(f"Login failed: {e}") from e
        print("✅ Login successful")

    def _handle_captcha(self) -> None:
        outcome = self.driver.locate(CAPTCHA, timeout=1)
        if not outcome.ok:
            return
        print(f"⚠️ CAPTCHA detected ({outcome.strategy}) - manual intervention may be required")
        self._capture("captcha_detected")
        if self.sleeper is not None:
            print(f"⏰ Waiting {self.captcha_wait:.0f}s for CAPTCHA resolution...")
            self.sleeper(self.captcha_wait)

    def _capture(self, tag: str) -> None:
        if self.capture is not None:
            self.capture(tag)

    # --- claim steps -----------------------------------------------------

    def navigate_to_trip(self, match: Match) -> str:
        """Open the trip page: direct link first, then search the trips list."""
        trip_id = match.trip_id
        self.driver.navigate(f"{self.base_url}/trips/{trip_id}", self.step_timeout)
        # the address bar echoes the requested id even on an error page
        if trip_id in self.driver.page_text():
            print(f"  ✅ Trip {trip_id} opened via direct link")
            return "direct"

        print("  ⚠️ Direct navigation failed, trying trips list...")
        self.pace()
        self.driver.navigate(f"{self.base_url}/your/trips", self.step_timeout)
        outcome = self.driver.click(trip_link_strategies(trip_id), self.step_timeout)
        if outcome.ok:
            print(f"  ✅ Trip {trip_id} opened via trips list ({outcome.strategy})")
            return "list"
        raise FatalWorkflowError(f"Could not find trip {trip_id} in trips list")

    def open_claim_form(self) -> str:
        outcome = self.driver.click(CLAIM_ENTRY, self.step_timeout)
        if not outcome.ok:
            # entry point is often below the fold
            self.driver.scroll(0.5)
            self.pace()
            outcome = self.driver.click(CLAIM_ENTRY, self.step_timeout)
        if not outcome.ok:
            raise FatalWorkflowError("Could not find charge incidents section")
        print(f"  ✅ Claim form opened ({outcome.strategy})")
        return str(outcome.strategy)

    def fill_claim_form(self, match: Match) -> None:
        if self.driver.select(INCIDENT_TYPE, "tolls", self.step_timeout).ok:
            self.pace()

        amount = self.driver.fill(AMOUNT_FIELD, f"{match.amount:.2f}", self.step_timeout)
        if not amount.ok:
            raise TransientWorkflowError("Could not locate amount field")
        self.pace()

        if self.driver.fill(DESCRIPTION_FIELD, build_claim_description(match), self.step_timeout).ok:
            self.pace()
        else:
            print("  ⚠️ Description field not found, continuing")

        if self.driver.fill(LOCATION_FIELD, match.toll.location or "", self.step_timeout).ok:
            self.pace()
        print(f"  ✅ Claim form filled for ${match.amount:.2f}")

    def upload_evidence(self, file_path: str) -> bool:
        outcome = self.driver.upload(FILE_INPUT, file_path, self.step_timeout)
        if not outcome.ok:
            if self.driver.click(UPLOAD_BUTTON, self.step_timeout).ok:
                self.pace()
                outcome = self.driver.upload(FILE_INPUT, file_path, self.step_timeout)
        if not outcome.ok:
            raise FatalWorkflowError("Could not find file upload input")
        self.pace()
        return True

    def submit(self) -> SubmitOutcome:
        if not self.driver.click(SUBMIT_BUTTON, self.step_timeout).ok:
            raise TransientWorkflowError("Could not find submit button")
        self.pace()

        success = self.driver.locate(SUCCESS_SIGNAL, self.step_timeout)
        if success.ok:
            message = success.text.strip() or "Submission confirmed"
            return SubmitOutcome(True, message, extract_confirmation_id(success.text))

        error = self.driver.locate(ERROR_SIGNAL, timeout=2)
        if error.ok:
            message = f"Submission failed: {error.text.strip()}"
            if classify_error(Exception(message)) == "transient":
                raise TransientWorkflowError(message)
            raise FatalWorkflowError(message)

        return SubmitOutcome(True, "Submission completed (confirmation pending)", None)
