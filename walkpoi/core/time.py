from __future__ import annotations

from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    return to_iso(utc_now())


def to_iso(dt: datetime) -> str:
    # Fixed-width so ISO strings compare lexicographically in SQL.
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def cutoff_iso(max_age_s: float, *, now: datetime | None = None) -> str:
    """ISO timestamp `max_age_s` seconds before `now`; rows older than it are stale."""
    base = now or utc_now()
    return to_iso(base - timedelta(seconds=float(max_age_s)))


def epoch_ms() -> int:
    return int(utc_now().timestamp() * 1000)
