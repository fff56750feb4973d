"""
Command line entry point.

    tollclaim match    load toll and trip records, match, save the Match Store
    tollclaim submit   submit eligible matches from the Match Store
    tollclaim run      both, in sequence
"""

import argparse
import os
import sys
from datetime import datetime
from typing import List, Optional

from dotenv import load_dotenv

from claim_submitter import ClaimSubmitter, SubmissionConfig
from claim_workflow import SessionError
from config_loader import load_config
from credential_provider import CredentialProvider
from data_importer import load_toll_records, load_trip_records
from execution_lock import ExecutionLock
from match_store import MatchStore
from selenium_driver import SeleniumBrowserDriver
from slack_notifier import SlackNotifier
from toll_matcher import generate_match_report, match_tolls_to_trips
from toll_models import Match, MatchResult


LOCK_NAME = "tollclaim_session"
EXIT_OK = 0
EXIT_FAILURE = 1


def _is_dry_run(flag: bool) -> bool:
    return flag or os.getenv("DRY_RUN", "false").lower() == "true"


def run_matching(cfg: dict) -> MatchResult:
    paths = cfg["paths"]
    print("=== Toll matching ===")
    tolls = load_toll_records(paths["tolls"])
    trips = load_trip_records(paths["trips"])

    result = match_tolls_to_trips(tolls, trips, cfg.get("matching"))
    MatchStore(paths["matches"]).save(result)

    report = generate_match_report(result, len(tolls), len(trips))
    summary = report["summary"]
    print("\n=== MATCHING REPORT ===")
    print(f"Toll records processed: {summary['tollRecordsProcessed']}")
    print(f"Trips processed: {summary['tripsProcessed']}")
    print(f"Total matches: {summary['totalMatches']}")
    print(f"Match rate: {summary['matchRate']}")
    breakdown = report["confidenceBreakdown"]
    print(f"Confidence: high={breakdown['high']} medium={breakdown['medium']} low={breakdown['low']}")
    for recommendation in report["recommendations"]:
        print(f"💡 {recommendation}")
    return result


def list_eligible(matches: List[Match]) -> None:
    print("\n*** DRY_RUN: no claims will be submitted ***")
    for i, m in enumerate(matches, 1):
        print(f"  [{i}] trip {m.trip_id} <- toll {m.toll_id} ${m.amount:.2f} "
              f"({m.confidence.category}, {m.confidence.score:.2f})")


def run_submission(cfg: dict, dry_run: bool = False) -> int:
    paths = cfg["paths"]
    config = SubmissionConfig.from_dict(cfg["submission"])
    matches = MatchStore(paths["matches"]).load_eligible_matches(config.eligible_categories)

    if dry_run:
        list_eligible(matches)
        return EXIT_OK

    lock_timeout = int(config.session_budget_seconds or 3600) + 600
    lock = ExecutionLock(LOCK_NAME, timeout=lock_timeout, lock_dir=paths.get("lock_dir", "."))
    process_id = f"{os.getpid()}_{datetime.now().strftime('%Y%m%d%H%M%S')}"
    if not lock.acquire_lock(process_id, {"matches": len(matches)}):
        print("❌ Another submission run holds the host session, aborting")
        return EXIT_FAILURE

    headless = bool(cfg["submission"].get("headless", True))
    submitter = ClaimSubmitter(
        config,
        driver_factory=lambda: SeleniumBrowserDriver.launch(headless=headless),
        credential_provider=CredentialProvider(),
    )
    try:
        report = submitter.run(matches, report_path=paths["report"])
    except SessionError as e:
        print(f"❌ Submission run aborted: {e}")
        return EXIT_FAILURE
    finally:
        lock.release_lock(process_id)

    webhook_url = os.getenv("SLACK_WEBHOOK_URL")
    if webhook_url:
        SlackNotifier(webhook_url).send_submission_summary(report)
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tollclaim",
        description="Match toll charges to rental trips and file reimbursement claims",
    )
    parser.add_argument("--config", type=str, default=None, help="path to submission.yml")
    parser.add_argument("--env-file", type=str, default=".env", help="environment file (default: .env)")
    parser.add_argument("--dry-run", action="store_true", help="match and list eligible claims without submitting")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("match", help="match toll records to trips and save the Match Store")
    sub.add_parser("submit", help="submit eligible matches from the Match Store")
    sub.add_parser("run", help="match, then submit")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if os.path.exists(args.env_file):
        load_dotenv(args.env_file)

    cfg = load_config(args.config)
    dry_run = _is_dry_run(args.dry_run)
    print(f"Started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")

    if args.command in ("match", "run"):
        run_matching(cfg)
    if args.command in ("submit", "run"):
        return run_submission(cfg, dry_run=dry_run)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
