import os
import yaml


DEFAULTS = {
    "matching": {
        "min_score": 0.2,
        "buffer_hours": 24,
        "start_only_hours": 48,
        "weights": {"time": 0.7, "location": 0.3},
        "amount_range": [5, 50],
        "amount_adjustment": 0.1,
    },
    "submission": {
        "base_url": "https://turo.com",
        "request_delay": 3.0,
        "submission_delay": 5.0,
        "jitter": 1.0,
        "max_retries": 3,
        "retry_base_delay": 10.0,
        "step_timeout": 30.0,
        "session_budget_minutes": 60,
        "eligible_categories": ["high", "medium"],
        "skip_previously_submitted": False,
        "headless": True,
        "failure_dir": "failure-screenshots",
    },
    "paths": {
        "tolls": "data/ezpass.json",
        "trips": "data/turo-trips.json",
        "matches": "data/matches.json",
        "report": "data/submission-report.json",
        "lock_dir": ".",
    },
}


def _config_path() -> str:
    return os.getenv(
        "TOLLCLAIM_CONFIG",
        os.path.join(os.path.dirname(os.path.dirname(__file__)), "config", "submission.yml"),
    )


def load_config(path: str | None = None) -> dict:
    path = path or _config_path()
    try:
        with open(path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}
    except FileNotFoundError:
        return {k: dict(v) for k, v in DEFAULTS.items()}

    # shallow merge defaults, one level into each section
    merged = {k: dict(v) for k, v in DEFAULTS.items()}
    for k, v in (cfg or {}).items():
        if isinstance(v, dict) and isinstance(merged.get(k), dict):
            mv = dict(merged[k])
            mv.update(v)
            merged[k] = mv
        else:
            merged[k] = v
    return merged
