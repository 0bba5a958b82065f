"""Shared test helpers for pricesync tests"""
from datetime import datetime, timedelta, timezone

T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Controllable clock; call it to read the current time."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


def iso(moment: datetime) -> str:
    """ISO-8601 with a trailing Z, the way the web client serializes dates."""
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def price_record(record_id: str = "p1", price: int = 1000, updated_at=None, **extra) -> dict:
    """Build a price record snapshot."""
    record = {"id": record_id, "price": price, "regionCode": "BF", "qualityGrade": "W320"}
    if updated_at is not None:
        record["updatedAt"] = iso(updated_at) if isinstance(updated_at, datetime) else updated_at
    record.update(extra)
    return record
