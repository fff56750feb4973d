from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from record_normalizer import parse_timestamp
from toll_models import (
    CATEGORY_HIGH,
    CATEGORY_LOW,
    CATEGORY_MEDIUM,
    CATEGORY_NO_MATCH,
    Match,
    MatchConfidence,
    MatchResult,
    TollRecord,
    TripRecord,
)


UNMATCHED_TOLL_REASON = "No matching trip found within time/location criteria"
UNMATCHED_TRIP_REASON = "No matching tolls found for this trip"

DEFAULTS = {
    "min_score": 0.2,
    "buffer_hours": 24,
    "start_only_hours": 48,
    "weights": {"time": 0.7, "location": 0.3},
    "amount_range": [5, 50],
    "amount_adjustment": 0.1,
}

# Facilities that show up on both sides with different surrounding text.
KNOWN_HUBS = [
    "newark", "jfk", "laguardia", "manhattan", "brooklyn", "queens",
    "bronx", "holland tunnel", "lincoln tunnel", "george washington bridge",
    "brooklyn bridge", "manhattan bridge", "williamsburg bridge",
    "midtown tunnel", "queensboro bridge",
]


def _cfg(cfg: Optional[Dict]) -> Dict:
    merged = dict(DEFAULTS)
    merged.update(cfg or {})
    return merged


def calculate_time_overlap(
    toll_at: Optional[datetime],
    trip_start: Optional[datetime],
    trip_end: Optional[datetime],
    cfg: Optional[Dict] = None,
) -> float:
    if toll_at is None:
        return 0.0
    c = _cfg(cfg)

    if trip_start is None or trip_end is None:
        if trip_start is not None:
            hours = abs((toll_at - trip_start).total_seconds()) / 3600
            return 0.5 if hours <= c["start_only_hours"] else 0.0
        return 0.0

    if trip_start <= toll_at <= trip_end:
        return 1.0

    buffer = timedelta(hours=c["buffer_hours"])
    if trip_start - buffer <= toll_at <= trip_end + buffer:
        if toll_at < trip_start:
            distance = trip_start - toll_at
        else:
            distance = toll_at - trip_end
        return max(0.1, 0.8 - (distance / buffer) * 0.7)

    return 0.0


def calculate_location_similarity(toll_location: Optional[str], trip_location: Optional[str]) -> float:
    if not toll_location or not trip_location:
        return 0.0

    toll = toll_location.lower().strip()
    trip = trip_location.lower().strip()
    if not toll or not trip:
        return 0.0

    if toll == trip:
        return 1.0
    if toll in trip or trip in toll:
        return 0.8

    for hub in KNOWN_HUBS:
        if hub in toll and hub in trip:
            return 0.6

    toll_words = toll.split()
    trip_words = trip.split()
    common = [w for w in toll_words if len(w) > 2 and w in trip_words]
    if common:
        ratio = len(common) / max(len(toll_words), len(trip_words))
        return min(0.5, ratio)
    return 0.0


def categorize_confidence(score: float) -> str:
    if score >= 0.8:
        return CATEGORY_HIGH
    if score >= 0.5:
        return CATEGORY_MEDIUM
    if score >= 0.2:
        return CATEGORY_LOW
    return CATEGORY_NO_MATCH


def calculate_match_confidence(
    time_overlap: float,
    location_similarity: float,
    amount: Optional[Decimal],
    cfg: Optional[Dict] = None,
) -> MatchConfidence:
    c = _cfg(cfg)
    weights = c["weights"]
    base = time_overlap * weights.get("time", 0.7) + location_similarity * weights.get("location", 0.3)

    # plausible toll amounts raise confidence, unusually large ones lower it
    boost = 0.0
    low, high = c["amount_range"]
    if amount is not None:
        if low <= amount <= high:
            boost = c["amount_adjustment"]
        elif amount > high:
            boost = -c["amount_adjustment"]

    score = max(0.0, min(1.0, base + boost))
    return MatchConfidence(
        score=score,
        time_overlap=time_overlap,
        location_similarity=location_similarity,
        category=categorize_confidence(score),
    )


def score_pair(toll: TollRecord, trip: TripRecord, cfg: Optional[Dict] = None) -> Optional[MatchConfidence]:
    """Confidence for one pair, or ``None`` when there is no time overlap at all."""
    overlap = calculate_time_overlap(
        toll.occurred_at,
        parse_timestamp(trip.starts_at),
        parse_timestamp(trip.ends_at),
        cfg,
    )
    if overlap == 0:
        return None
    similarity = calculate_location_similarity(toll.location, trip.location)
    return calculate_match_confidence(overlap, similarity, toll.amount, cfg)


def match_tolls_to_trips(
    tolls: List[TollRecord],
    trips: List[TripRecord],
    cfg: Optional[Dict] = None,
    matched_at: Optional[str] = None,
) -> MatchResult:
    """Greedy 1:1 assignment of tolls to trips, in toll input order.

    Each toll takes the highest-scoring trip not yet claimed by an earlier
    toll. Outcomes therefore depend on toll order; a later toll with a
    better fit can lose a trip to an earlier, weaker one.
    """
    c = _cfg(cfg)
    stamp = matched_at or datetime.now(timezone.utc).isoformat()
    print(f"🔍 Matching {len(tolls)} tolls against {len(trips)} trips...")

    matches: List[Match] = []
    # positions, not ids: scraped ids are not guaranteed unique
    matched_tolls = set()
    claimed_trips = set()

    for toll_index, toll in enumerate(tolls):
        best_index: Optional[int] = None
        best: Optional[MatchConfidence] = None

        for trip_index, trip in enumerate(trips):
            if trip_index in claimed_trips:
                continue
            confidence = score_pair(toll, trip, c)
            if confidence is None:
                continue
            if confidence.score > (best.score if best else 0):
                best_index, best = trip_index, confidence

        if best_index is not None and best.score >= c["min_score"]:
            best_trip = trips[best_index]
            matches.append(Match(toll=toll, trip=best_trip, confidence=best, matched_at=stamp))
            matched_tolls.add(toll_index)
            claimed_trips.add(best_index)
            print(f"  ✅ toll {toll.id} -> trip {best_trip.id} ({best.category}, score={best.score:.2f})")

    unmatched_tolls = [t for i, t in enumerate(tolls) if i not in matched_tolls]
    unmatched_trips = [t for i, t in enumerate(trips) if i not in claimed_trips]

    result = MatchResult(matches=matches, unmatched_tolls=unmatched_tolls, unmatched_trips=unmatched_trips)
    counts = count_by_category(matches)
    print(
        f"  matches={len(matches)} (high={counts[CATEGORY_HIGH]}, medium={counts[CATEGORY_MEDIUM]}, "
        f"low={counts[CATEGORY_LOW]}) unmatched_tolls={len(unmatched_tolls)} unmatched_trips={len(unmatched_trips)}"
    )
    return result


def count_by_category(matches: List[Match]) -> Dict[str, int]:
    counts = {CATEGORY_HIGH: 0, CATEGORY_MEDIUM: 0, CATEGORY_LOW: 0, CATEGORY_NO_MATCH: 0}
    for m in matches:
        counts[m.confidence.category] = counts.get(m.confidence.category, 0) + 1
    return counts


def generate_match_report(result: MatchResult, toll_count: int, trip_count: int) -> Dict:
    counts = count_by_category(result.matches)
    report = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "summary": {
            "tollRecordsProcessed": toll_count,
            "tripsProcessed": trip_count,
            "totalMatches": len(result.matches),
            "matchRate": f"{len(result.matches) / toll_count * 100:.1f}%" if toll_count > 0 else "0%",
        },
        "confidenceBreakdown": {
            "high": counts[CATEGORY_HIGH],
            "medium": counts[CATEGORY_MEDIUM],
            "low": counts[CATEGORY_LOW],
        },
        "recommendations": [],
    }

    if result.unmatched_tolls:
        report["recommendations"].append(
            f"{len(result.unmatched_tolls)} tolls could not be matched. "
            "Consider expanding the time window or improving location matching."
        )
    if counts[CATEGORY_LOW] > 0:
        report["recommendations"].append(
            "Some matches have low confidence. Manual review recommended before submitting claims."
        )
    if not result.matches and toll_count > 0:
        report["recommendations"].append(
            "No matches found. Check that trip data covers the same time period as toll records."
        )
    return report
