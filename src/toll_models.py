from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional

from record_normalizer import parse_amount, parse_timestamp


CATEGORY_HIGH = "high"
CATEGORY_MEDIUM = "medium"
CATEGORY_LOW = "low"
CATEGORY_NO_MATCH = "no_match"

STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"


def _to_decimal(value) -> Decimal:
    amount = parse_amount(value)
    return amount if amount is not None else Decimal("0")


def _amount_json(value: Optional[Decimal]):
    if value is None:
        return None
    return float(value)


@dataclass(frozen=True)
class TollRecord:
    """One toll-authority transaction, as scraped."""

    id: str
    date: Optional[str]
    location: str
    amount: Decimal
    time: str = ""
    description: str = ""
    evidence_path: Optional[str] = None

    @property
    def occurred_at(self):
        return parse_timestamp(self.date, self.time)

    @classmethod
    def from_dict(cls, d: Dict) -> "TollRecord":
        return cls(
            id=str(d.get("id")),
            date=d.get("date"),
            time=d.get("time") or "",
            location=d.get("location") or "",
            amount=_to_decimal(d.get("amount")),
            description=d.get("description") or "",
            evidence_path=d.get("screenshotPath") or d.get("evidencePath"),
        )

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "date": self.date,
            "time": self.time,
            "location": self.location,
            "amount": _amount_json(self.amount),
            "description": self.description,
        }


@dataclass(frozen=True)
class TripRecord:
    """One rental trip from the hosting platform."""

    id: str
    starts_at: Optional[str]
    ends_at: Optional[str]
    location: str
    guest_name: str = "Unknown Guest"
    vehicle_description: str = "Unknown Vehicle"
    status: str = ""
    amount: Optional[Decimal] = None

    @classmethod
    def from_dict(cls, d: Dict) -> "TripRecord":
        # scraper output nests guest/vehicle/dates; persisted snapshots are flat
        if "dates" in d or "guest" in d:
            dates = d.get("dates") or {}
            starts_at, ends_at = dates.get("start"), dates.get("end")
            guest = (d.get("guest") or {}).get("name")
            vehicle = (d.get("vehicle") or {}).get("name")
        else:
            starts_at, ends_at = d.get("startDate"), d.get("endDate")
            guest = d.get("guestName")
            vehicle = d.get("vehicleName")
        amount = d.get("amount")
        return cls(
            id=str(d.get("tripId")),
            starts_at=starts_at,
            ends_at=ends_at,
            location=d.get("location") or "",
            guest_name=guest or "Unknown Guest",
            vehicle_description=vehicle or "Unknown Vehicle",
            status=d.get("status") or "",
            amount=_to_decimal(amount) if amount is not None else None,
        )

    def to_dict(self) -> Dict:
        return {
            "tripId": self.id,
            "status": self.status,
            "guestName": self.guest_name,
            "vehicleName": self.vehicle_description,
            "startDate": self.starts_at,
            "endDate": self.ends_at,
            "location": self.location,
            "amount": _amount_json(self.amount),
        }


@dataclass(frozen=True)
class MatchConfidence:
    score: float
    time_overlap: float
    location_similarity: float
    category: str

    def to_dict(self) -> Dict:
        return {
            "score": self.score,
            "timeOverlap": self.time_overlap,
            "locationSimilarity": self.location_similarity,
            "category": self.category,
        }

    @classmethod
    def from_dict(cls, d: Dict) -> "MatchConfidence":
        return cls(
            score=float(d.get("score", 0)),
            time_overlap=float(d.get("timeOverlap", 0)),
            location_similarity=float(d.get("locationSimilarity", 0)),
            category=d.get("category", CATEGORY_NO_MATCH),
        )


@dataclass(frozen=True)
class Match:
    """A proposed (toll, trip) pairing. Amount and evidence are copied from the toll."""

    toll: TollRecord
    trip: TripRecord
    confidence: MatchConfidence
    matched_at: str

    @property
    def trip_id(self) -> str:
        return self.trip.id

    @property
    def toll_id(self) -> str:
        return self.toll.id

    @property
    def amount(self) -> Decimal:
        return self.toll.amount

    @property
    def evidence_path(self) -> Optional[str]:
        return self.toll.evidence_path

    @property
    def match_ref(self) -> str:
        return f"{self.trip.id}:{self.toll.id}"

    def to_dict(self) -> Dict:
        return {
            "tripId": self.trip_id,
            "tollId": self.toll_id,
            "amount": _amount_json(self.amount),
            "evidencePath": self.evidence_path,
            "confidence": self.confidence.to_dict(),
            "toll": self.toll.to_dict(),
            "trip": self.trip.to_dict(),
            "matchedAt": self.matched_at,
        }

    @classmethod
    def from_dict(cls, d: Dict) -> "Match":
        toll_d = dict(d.get("toll") or {})
        toll_d.setdefault("id", d.get("tollId"))
        toll_d.setdefault("amount", d.get("amount"))
        toll_d["evidencePath"] = d.get("evidencePath")
        trip_d = dict(d.get("trip") or {})
        trip_d.setdefault("tripId", d.get("tripId"))
        return cls(
            toll=TollRecord.from_dict(toll_d),
            trip=TripRecord.from_dict(trip_d),
            confidence=MatchConfidence.from_dict(d.get("confidence") or {}),
            matched_at=d.get("matchedAt", ""),
        )


@dataclass
class MatchResult:
    matches: List[Match] = field(default_factory=list)
    unmatched_tolls: List[TollRecord] = field(default_factory=list)
    unmatched_trips: List[TripRecord] = field(default_factory=list)


@dataclass(frozen=True)
class SubmissionAttempt:
    """One execution of the claim-filing workflow for a match. Never mutated."""

    match_ref: str
    trip_id: str
    toll_id: str
    amount: Decimal
    status: str  # success|failed
    message: str
    confidence: str
    processing_time_ms: int
    timestamp: str
    confirmation_id: Optional[str] = None
    evidence_uploaded: bool = False
    attempts: int = 1
    failed_stage: Optional[str] = None
    failure_evidence: Optional[str] = None
    state_history: tuple = ()

    def to_dict(self) -> Dict:
        return {
            "matchRef": self.match_ref,
            "tripId": self.trip_id,
            "tollId": self.toll_id,
            "amount": _amount_json(self.amount),
            "status": self.status,
            "message": self.message,
            "confirmationId": self.confirmation_id,
            "evidenceUploaded": self.evidence_uploaded,
            "confidence": self.confidence,
            "processingTime": self.processing_time_ms,
            "timestamp": self.timestamp,
            "attempts": self.attempts,
            "failedStage": self.failed_stage,
            "failureEvidence": self.failure_evidence,
            "stateHistory": list(self.state_history),
        }


@dataclass(frozen=True)
class Credentials:
    identifier: str
    secret: str
    source: str = "unknown"
