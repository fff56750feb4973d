"""In-memory BrowserDriver used by the workflow and submitter tests."""

import claim_workflow as cw
from claim_workflow import StepOutcome


GROUPS = {
    id(cw.EMAIL_FIELD): "email",
    id(cw.PASSWORD_FIELD): "password",
    id(cw.LOGIN_BUTTON): "login",
    id(cw.CAPTCHA): "captcha",
    id(cw.CLAIM_ENTRY): "claim_entry",
    id(cw.INCIDENT_TYPE): "incident_type",
    id(cw.AMOUNT_FIELD): "amount",
    id(cw.DESCRIPTION_FIELD): "description",
    id(cw.LOCATION_FIELD): "location",
    id(cw.FILE_INPUT): "file_input",
    id(cw.UPLOAD_BUTTON): "upload_button",
    id(cw.SUBMIT_BUTTON): "submit",
    id(cw.SUCCESS_SIGNAL): "success",
    id(cw.ERROR_SIGNAL): "error",
}


class FakeDriver:
    def __init__(self, success_text="Claim submitted. Confirmation #ABC12345"):
        self.url = ""
        self.current_trip = None
        self.success_text = success_text
        self.error_text = None
        self.captcha = False
        self.login_ok = True
        self.direct_ok = True
        self.not_found = False
        self.missing = set()
        self.raise_on = {}
        self.calls = []
        self.fills = {}
        self.uploads = []
        self.screenshots = []
        self.closed = False

    def _group(self, strategies):
        return GROUPS.get(id(strategies), "trip_link")

    def _maybe_raise(self, group):
        hook = self.raise_on.get(group)
        if hook is not None:
            exc = hook(self)
            if exc is not None:
                raise exc

    def _present(self, group, strategies):
        self.calls.append(group)
        self._maybe_raise(group)
        if group in self.missing:
            return StepOutcome(False)
        return StepOutcome(True, strategies[0])

    def navigate(self, url, timeout):
        self.calls.append(f"navigate:{url}")
        self._maybe_raise("navigate")
        self.url = url
        self.not_found = False
        if "/trips/" in url:
            self.current_trip = url.rsplit("/", 1)[-1]
            # the address bar keeps the trip id even when the page is an error
            self.not_found = not self.direct_ok

    def current_url(self):
        return self.url

    def page_text(self):
        return "Page not found" if self.not_found else f"Trip details {self.url}"

    def locate(self, strategies, timeout):
        group = self._group(strategies)
        self.calls.append(group)
        self._maybe_raise(group)
        if group == "captcha":
            return StepOutcome(self.captcha, strategies[0] if self.captcha else None)
        if group == "success":
            if self.success_text:
                return StepOutcome(True, strategies[0], self.success_text)
            return StepOutcome(False)
        if group == "error":
            if self.error_text:
                return StepOutcome(True, strategies[0], self.error_text)
            return StepOutcome(False)
        return self._present(group, strategies)

    def click(self, strategies, timeout):
        group = self._group(strategies)
        outcome = self._present(group, strategies)
        if outcome.ok and group == "login" and self.login_ok:
            self.url = "https://turo.com/dashboard"
        if outcome.ok and group == "trip_link":
            self.url = f"https://turo.com/trips/{self.current_trip}"
            self.not_found = False
        return outcome

    def fill(self, strategies, value, timeout):
        group = self._group(strategies)
        outcome = self._present(group, strategies)
        if outcome.ok:
            self.fills[group] = value
        return outcome

    def select(self, strategies, option, timeout):
        group = self._group(strategies)
        outcome = self._present(group, strategies)
        if outcome.ok:
            self.fills[group] = option
        return outcome

    def upload(self, strategies, file_path, timeout):
        group = self._group(strategies)
        outcome = self._present(group, strategies)
        if outcome.ok:
            self.uploads.append(file_path)
        return outcome

    def scroll(self, fraction):
        self.calls.append(f"scroll:{fraction}")

    def screenshot(self, path):
        self.screenshots.append(path)
        return True

    def close(self):
        self.closed = True
