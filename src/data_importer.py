import json
import os
from datetime import datetime, timedelta
from typing import Dict, List

from toll_models import TollRecord, TripRecord


def _placeholder(count_key: str, list_key: str) -> Dict:
    today = datetime.now()
    return {
        "scrapeDate": today.isoformat(),
        "dateRange": {
            "start": (today - timedelta(days=7)).strftime("%Y-%m-%d"),
            "end": today.strftime("%Y-%m-%d"),
        },
        count_key: 0,
        list_key: [],
    }


def _load_source(path: str, count_key: str, list_key: str) -> List[Dict]:
    """Raw records from a scraper output file.

    A missing file is replaced by an empty placeholder so the next stages can
    run; a corrupt file is an error.
    """
    if not os.path.exists(path):
        print(f"⚠️ {path} not found, writing empty placeholder")
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(_placeholder(count_key, list_key), f, ensure_ascii=False, indent=2)
        return []

    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    records = data.get(list_key) or []
    print(f"📄 Loaded {len(records)} {list_key} from {path}")
    return records


def _with_ids(records: List[Dict], id_key: str, list_key: str) -> List[Dict]:
    kept = [r for r in records if r.get(id_key) not in (None, "")]
    if len(kept) != len(records):
        print(f"⚠️ Skipping {len(records) - len(kept)} {list_key} without {id_key}")
    return kept


def load_toll_records(path: str) -> List[TollRecord]:
    records = _with_ids(_load_source(path, "totalRecords", "records"), "id", "records")
    return [TollRecord.from_dict(r) for r in records]


def load_trip_records(path: str) -> List[TripRecord]:
    trips = _with_ids(_load_source(path, "totalTrips", "trips"), "tripId", "trips")
    return [TripRecord.from_dict(t) for t in trips]
