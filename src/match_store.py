import json
import os
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from toll_matcher import UNMATCHED_TOLL_REASON, UNMATCHED_TRIP_REASON, count_by_category
from toll_models import (
    CATEGORY_HIGH,
    CATEGORY_LOW,
    CATEGORY_MEDIUM,
    Match,
    MatchResult,
    TollRecord,
    TripRecord,
)


DEFAULT_ELIGIBLE = (CATEGORY_HIGH, CATEGORY_MEDIUM)


def _unmatched_toll(toll: TollRecord) -> Dict:
    return {
        "id": toll.id,
        "date": toll.date,
        "location": toll.location,
        "amount": float(toll.amount),
        "reason": UNMATCHED_TOLL_REASON,
    }


def _unmatched_trip(trip: TripRecord) -> Dict:
    return {
        "tripId": trip.id,
        "startDate": trip.starts_at,
        "endDate": trip.ends_at,
        "location": trip.location,
        "reason": UNMATCHED_TRIP_REASON,
    }


def build_snapshot(result: MatchResult, matched_at: Optional[str] = None) -> Dict:
    counts = count_by_category(result.matches)
    total = sum((m.amount for m in result.matches), Decimal("0"))
    return {
        "matchedAt": matched_at or datetime.now(timezone.utc).isoformat(),
        "summary": {
            "totalMatches": len(result.matches),
            "highConfidenceMatches": counts[CATEGORY_HIGH],
            "mediumConfidenceMatches": counts[CATEGORY_MEDIUM],
            "lowConfidenceMatches": counts[CATEGORY_LOW],
            "unmatchedTolls": len(result.unmatched_tolls),
            "unmatchedTrips": len(result.unmatched_trips),
            "totalTollAmount": float(total),
        },
        "matches": [m.to_dict() for m in result.matches],
        "unmatchedTolls": [_unmatched_toll(t) for t in result.unmatched_tolls],
        "unmatchedTrips": [_unmatched_trip(t) for t in result.unmatched_trips],
    }


class MatchStore:
    """Durable JSON snapshot handed from the matcher to the submitter.

    Single writer (one matching batch), read-only for the submitter.
    """

    def __init__(self, path: str):
        self.path = path

    def save(self, result: MatchResult, matched_at: Optional[str] = None) -> str:
        snapshot = build_snapshot(result, matched_at)
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(snapshot, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, self.path)

        print(f"💾 Matches saved to: {self.path}")
        print(f"   Total matches: {snapshot['summary']['totalMatches']}")
        print(f"   Total toll amount: ${snapshot['summary']['totalTollAmount']:.2f}")
        return self.path

    def load(self) -> Optional[Dict]:
        """Raw snapshot as written, or None when no matching run has happened yet."""
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return None

    def load_matches(self) -> List[Match]:
        snapshot = self.load()
        if snapshot is None:
            print(f"⚠️ No matches file found at {self.path}")
            return []
        return [Match.from_dict(d) for d in snapshot.get("matches", [])]

    def load_eligible_matches(self, categories=DEFAULT_ELIGIBLE) -> List[Match]:
        """Matches eligible for automated submission, in persisted order."""
        matches = self.load_matches()
        eligible = [m for m in matches if m.confidence.category in categories]
        print(f"📄 Loaded {len(matches)} matches, {len(eligible)} eligible for automatic submission")
        return eligible
