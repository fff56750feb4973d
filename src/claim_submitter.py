"""
Submission orchestrator: files one reimbursement claim per eligible match.

Per match the claim moves through a bounded state machine

    Start -> NavigateToTrip -> OpenClaimForm -> FillClaimForm
          -> UploadEvidence -> Submit -> Completed

where any step may pass through Retrying (transient failure, bounded by
``max_retries`` with exponential backoff) and end in Failed. Matches run
one at a time inside a single browser session; a failed match never stops
the batch. Only session establishment (credentials, login) is run-fatal.
"""

import json
import os
import random
import sqlite3
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import state_store
from claim_workflow import BrowserDriver, HostClaimWorkflow, SessionError, classify_error
from evidence_capture import EvidenceCapture
from toll_models import (
    CATEGORY_HIGH,
    CATEGORY_MEDIUM,
    STATUS_FAILED,
    STATUS_SUCCESS,
    Match,
    SubmissionAttempt,
)


MIN_REQUEST_DELAY = 1.0
MIN_SUBMISSION_DELAY = 2.0


class ClaimState(str, Enum):
    START = "Start"
    NAVIGATE_TO_TRIP = "NavigateToTrip"
    OPEN_CLAIM_FORM = "OpenClaimForm"
    FILL_CLAIM_FORM = "FillClaimForm"
    UPLOAD_EVIDENCE = "UploadEvidence"
    SUBMIT = "Submit"
    RETRYING = "Retrying"
    COMPLETED = "Completed"
    FAILED = "Failed"


STEP_ORDER = [
    ClaimState.NAVIGATE_TO_TRIP,
    ClaimState.OPEN_CLAIM_FORM,
    ClaimState.FILL_CLAIM_FORM,
    ClaimState.UPLOAD_EVIDENCE,
    ClaimState.SUBMIT,
]

STAGE_TAGS = {
    ClaimState.NAVIGATE_TO_TRIP: "navigate_trip",
    ClaimState.OPEN_CLAIM_FORM: "charge_incidents_navigation",
    ClaimState.FILL_CLAIM_FORM: "fill_form",
    ClaimState.UPLOAD_EVIDENCE: "upload",
    ClaimState.SUBMIT: "submit",
}


@dataclass
class SubmissionConfig:
    base_url: str = "https://turo.com"
    request_delay: float = 3.0
    submission_delay: float = 5.0
    jitter: float = 1.0
    max_retries: int = 3
    retry_base_delay: float = 10.0
    step_timeout: float = 30.0
    session_budget_seconds: Optional[float] = 3600.0
    eligible_categories: tuple = (CATEGORY_HIGH, CATEGORY_MEDIUM)
    skip_previously_submitted: bool = False
    failure_dir: str = "failure-screenshots"

    def __post_init__(self):
        # pacing can be tuned but never switched off
        if self.request_delay < MIN_REQUEST_DELAY:
            print(f"⚠️ request_delay {self.request_delay}s is below the minimum, using {MIN_REQUEST_DELAY}s")
            self.request_delay = MIN_REQUEST_DELAY
        if self.submission_delay < MIN_SUBMISSION_DELAY:
            print(f"⚠️ submission_delay {self.submission_delay}s is below the minimum, using {MIN_SUBMISSION_DELAY}s")
            self.submission_delay = MIN_SUBMISSION_DELAY
        self.jitter = max(0.0, self.jitter)
        self.max_retries = max(1, int(self.max_retries))
        self.eligible_categories = tuple(self.eligible_categories)

    @classmethod
    def from_dict(cls, cfg: Dict) -> "SubmissionConfig":
        budget = cfg.get("session_budget_minutes", 60)
        return cls(
            base_url=cfg.get("base_url", "https://turo.com"),
            request_delay=float(cfg.get("request_delay", 3.0)),
            submission_delay=float(cfg.get("submission_delay", 5.0)),
            jitter=float(cfg.get("jitter", 1.0)),
            max_retries=int(cfg.get("max_retries", 3)),
            retry_base_delay=float(cfg.get("retry_base_delay", 10.0)),
            step_timeout=float(cfg.get("step_timeout", 30.0)),
            session_budget_seconds=float(budget) * 60 if budget else None,
            eligible_categories=tuple(cfg.get("eligible_categories", (CATEGORY_HIGH, CATEGORY_MEDIUM))),
            skip_previously_submitted=bool(cfg.get("skip_previously_submitted", False)),
            failure_dir=cfg.get("failure_dir", "failure-screenshots"),
        )


@dataclass(frozen=True)
class RetryState:
    """Attempt counter and backoff for one step. ``attempt`` is 1-based."""

    max_attempts: int
    base_delay: float
    attempt: int = 1

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.max_attempts

    @property
    def delay(self) -> float:
        return self.base_delay * (2 ** (self.attempt - 1))

    def advance(self) -> "RetryState":
        return RetryState(self.max_attempts, self.base_delay, self.attempt + 1)


@dataclass
class StepResult:
    ok: bool
    value: Any = None
    error: Optional[BaseException] = None
    attempts: int = 1


@dataclass
class _MatchProgress:
    history: List[str] = field(default_factory=lambda: [ClaimState.START.value])
    retries: int = 0


class ClaimSubmitter:
    def __init__(
        self,
        config: SubmissionConfig,
        driver_factory: Callable[[], BrowserDriver],
        credential_provider,
        sleeper: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        rng: Callable[[], float] = random.random,
        record_state: bool = True,
    ):
        self.config = config
        self.driver_factory = driver_factory
        self.credential_provider = credential_provider
        self._sleep = sleeper
        self._clock = clock
        self._rng = rng
        self.record_state = record_state

        self.driver: Optional[BrowserDriver] = None
        self.workflow: Optional[HostClaimWorkflow] = None
        self.evidence: Optional[EvidenceCapture] = None
        self.attempts: List[SubmissionAttempt] = []
        self.stopped_early = False

    # --- pacing ----------------------------------------------------------

    def _pause(self, seconds: float) -> None:
        self._sleep(seconds + self._rng() * self.config.jitter)

    def _pace_action(self) -> None:
        self._pause(self.config.request_delay)

    # --- selection -------------------------------------------------------

    def select_eligible(self, matches: List[Match]) -> List[Match]:
        eligible = [m for m in matches if m.confidence.category in self.config.eligible_categories]
        if self.config.skip_previously_submitted and self.record_state:
            state_store.init_db()
            before = len(eligible)
            eligible = [m for m in eligible if not state_store.is_submitted(m.match_ref)]
            if before != len(eligible):
                print(f"⏭️ Skipping {before - len(eligible)} matches already submitted in earlier runs")
        print(f"{len(eligible)} matches eligible for automatic submission")
        return eligible

    # --- per-step retry loop ---------------------------------------------

    def _run_step(self, state: ClaimState, action: Callable[[], Any], progress: _MatchProgress) -> StepResult:
        retry = RetryState(self.config.max_retries, self.config.retry_base_delay)
        while True:
            progress.history.append(state.value)
            try:
                return StepResult(ok=True, value=action(), attempts=retry.attempt)
            except Exception as e:
                kind = classify_error(e)
                print(f"  ❌ {state.value} attempt {retry.attempt}/{retry.max_attempts} failed ({kind}): {e}")
                if kind != "transient" or retry.exhausted:
                    return StepResult(ok=False, error=e, attempts=retry.attempt)
                print(f"  🔄 Retrying {state.value} in {retry.delay:.0f}s...")
                progress.history.append(ClaimState.RETRYING.value)
                progress.retries += 1
                self._pause(retry.delay)
                retry = retry.advance()

    def _upload_evidence(self, match: Match, progress: _MatchProgress) -> bool:
        if not match.evidence_path:
            progress.history.append(ClaimState.UPLOAD_EVIDENCE.value)
            print("  ⚠️ No evidence path provided for match")
            return False
        path = os.path.abspath(match.evidence_path)
        if not os.path.isfile(path) or not os.access(path, os.R_OK):
            progress.history.append(ClaimState.UPLOAD_EVIDENCE.value)
            print(f"  ⚠️ Evidence file not readable: {path}")
            return False
        result = self._run_step(ClaimState.UPLOAD_EVIDENCE, lambda: self.workflow.upload_evidence(path), progress)
        if not result.ok:
            # evidence supports the claim, it never blocks it
            print(f"  ⚠️ Evidence upload skipped: {result.error}")
            return False
        print(f"  ✅ Evidence uploaded: {os.path.basename(path)}")
        return True

    # --- one match -------------------------------------------------------

    def process_match(self, match: Match, index: int, total: int) -> SubmissionAttempt:
        started = self._clock()
        progress = _MatchProgress()
        print(f"\n=== Processing match {index + 1}/{total} ===")
        print(f"Trip: {match.trip_id}, Toll: {match.toll_id}, Amount: ${match.amount:.2f}")
        print(f"Confidence: {match.confidence.category} ({match.confidence.score:.2f})")

        actions = {
            ClaimState.NAVIGATE_TO_TRIP: lambda: self.workflow.navigate_to_trip(match),
            ClaimState.OPEN_CLAIM_FORM: self.workflow.open_claim_form,
            ClaimState.FILL_CLAIM_FORM: lambda: self.workflow.fill_claim_form(match),
            ClaimState.SUBMIT: self.workflow.submit,
        }

        uploaded = False
        outcome = None
        for state in STEP_ORDER:
            if state is ClaimState.UPLOAD_EVIDENCE:
                uploaded = self._upload_evidence(match, progress)
                self._pace_action()
                continue

            result = self._run_step(state, actions[state], progress)
            if not result.ok:
                tag = f"{STAGE_TAGS[state]}_{match.trip_id}_failed"
                evidence_path = self.evidence.capture(tag) if self.evidence else None
                progress.history.append(ClaimState.FAILED.value)
                print(f"❌ Failed to process trip {match.trip_id}: {result.error}")
                return self._attempt(
                    match, started, progress,
                    status=STATUS_FAILED,
                    message=str(result.error),
                    evidence_uploaded=uploaded,
                    failed_stage=state.value,
                    failure_evidence=evidence_path,
                )
            outcome = result.value
            if state is not ClaimState.SUBMIT:
                self._pace_action()

        progress.history.append(ClaimState.COMPLETED.value)
        attempt = self._attempt(
            match, started, progress,
            status=STATUS_SUCCESS,
            message=outcome.message,
            confirmation_id=outcome.confirmation_id,
            evidence_uploaded=uploaded,
        )
        print(f"✅ Successfully processed trip {match.trip_id} in {attempt.processing_time_ms}ms")
        return attempt

    def _attempt(self, match: Match, started: float, progress: _MatchProgress, **kwargs) -> SubmissionAttempt:
        return SubmissionAttempt(
            match_ref=match.match_ref,
            trip_id=match.trip_id,
            toll_id=match.toll_id,
            amount=match.amount,
            confidence=match.confidence.category,
            processing_time_ms=int((self._clock() - started) * 1000),
            timestamp=datetime.now(timezone.utc).isoformat(),
            attempts=1 + progress.retries,
            state_history=tuple(progress.history),
            **kwargs,
        )

    def _record(self, attempt: SubmissionAttempt) -> None:
        if not self.record_state:
            return
        level = "INFO" if attempt.status == STATUS_SUCCESS else "ERROR"
        error = None if attempt.status == STATUS_SUCCESS else attempt.message
        # the report already holds the attempt; a state write never stops the batch
        try:
            state_store.write_audit(level, "claim_submitter", "submit_claim",
                                    [attempt.trip_id, attempt.toll_id], attempt.status, error)
        except sqlite3.Error as e:
            print(f"⚠️ Audit write failed for {attempt.match_ref}: {e}")
        if attempt.status != STATUS_SUCCESS:
            return
        try:
            state_store.mark_submitted(attempt.match_ref, {
                "trip_id": attempt.trip_id,
                "toll_id": attempt.toll_id,
                "amount": float(attempt.amount),
                "confirmation_id": attempt.confirmation_id,
            })
        except sqlite3.Error as e:
            print(f"⚠️ Could not record {attempt.match_ref} as submitted: {e}")

    # --- session ---------------------------------------------------------

    def _open_session(self) -> None:
        credentials = self.credential_provider.get_credentials()
        self.driver = self.driver_factory()
        self.evidence = EvidenceCapture(self.driver, self.config.failure_dir)
        self.workflow = HostClaimWorkflow(
            self.driver,
            base_url=self.config.base_url,
            step_timeout=self.config.step_timeout,
            pace=self._pace_action,
            sleeper=self._sleep,
            capture=self.evidence.capture,
        )
        self.workflow.login(credentials)

    def _close_session(self) -> None:
        if self.driver is None:
            return
        try:
            self.driver.close()
            print("Browser cleanup completed")
        except Exception as e:
            print(f"⚠️ Error during browser cleanup: {e}")
        self.driver = None

    def _budget_expired(self, session_started: float) -> bool:
        budget = self.config.session_budget_seconds
        return budget is not None and self._clock() - session_started >= budget

    def _run_session(self, eligible: List[Match]) -> None:
        session_started = self._clock()
        try:
            self._open_session()
        except SessionError as e:
            print(f"❌ Could not establish host session: {e}")
            self._close_session()
            raise

        try:
            self._pause(self.config.submission_delay)
            total = len(eligible)
            for i, match in enumerate(eligible):
                if self._budget_expired(session_started):
                    self.stopped_early = True
                    print(f"⏰ Session budget exhausted, {total - i} matches left for the next run")
                    break
                attempt = self.process_match(match, i, total)
                self.attempts.append(attempt)
                self._record(attempt)
                if i < total - 1:
                    print(f"⏰ Waiting {self.config.submission_delay:.0f}s before next submission...")
                    self._pause(self.config.submission_delay)
        finally:
            self._close_session()

    def run(self, matches: List[Match], report_path: Optional[str] = None) -> Dict:
        """Submit every eligible match and return the Submission Report.

        The report is built (and written when ``report_path`` is given) even
        when the session cannot be established; the SessionError is re-raised
        afterwards.
        """
        print("🤖 Starting automated toll reimbursement submission...")
        self.attempts = []
        self.stopped_early = False
        if self.record_state:
            state_store.init_db()
        eligible = self.select_eligible(matches)
        try:
            if eligible:
                self._run_session(eligible)
            else:
                print("No matches found for submission")
        finally:
            report = build_submission_report(len(eligible), self.attempts, self.config)
            if report_path:
                save_submission_report(report, report_path)
        return report


def build_submission_report(total_matches: int, attempts: List[SubmissionAttempt], config: SubmissionConfig) -> Dict:
    successes = [a for a in attempts if a.status == STATUS_SUCCESS]
    failures = [a for a in attempts if a.status == STATUS_FAILED]
    total_amount = sum((a.amount for a in successes), Decimal("0"))
    average = sum(a.processing_time_ms for a in attempts) / len(attempts) if attempts else 0
    return {
        "submissionDate": datetime.now(timezone.utc).isoformat(),
        "summary": {
            "totalMatches": total_matches,
            "successfulSubmissions": len(successes),
            "failedSubmissions": len(failures),
            "totalAmount": float(total_amount),
            "averageProcessingTime": average,
        },
        "submissions": [a.to_dict() for a in attempts],
        "configuration": {
            "requestDelay": int(config.request_delay * 1000),
            "submissionDelay": int(config.submission_delay * 1000),
            "maxRetries": config.max_retries,
        },
    }


def save_submission_report(report: Dict, path: str) -> str:
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(report, f, ensure_ascii=False, indent=2)

    summary = report["summary"]
    print("\n=== SUBMISSION REPORT ===")
    print(f"Total matches processed: {summary['totalMatches']}")
    print(f"Successful submissions: {summary['successfulSubmissions']}")
    print(f"Failed submissions: {summary['failedSubmissions']}")
    print(f"Total amount submitted: ${summary['totalAmount']:.2f}")
    print(f"Average processing time: {summary['averageProcessingTime']:.0f}ms")
    print(f"💾 Report saved to: {path}")
    return path
