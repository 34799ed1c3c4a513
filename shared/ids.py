"""Identifier and clock capabilities injected into the services."""

import itertools
import uuid
from datetime import datetime, timezone
from typing import Callable


IdGenerator = Callable[[str], str]
Clock = Callable[[], datetime]


def random_id(prefix: str) -> str:
    """Return ``<prefix>_<random hex>``; unique across processes."""
    return f"{prefix}_{uuid.uuid4().hex}"


def utc_now() -> datetime:
    """Naive UTC timestamp, matching how rows are stored."""
    return datetime.utcnow()


class SequentialIdGenerator:
    """Deterministic ids (``alert_1``, ``alert_2``...), one counter per prefix."""

    def __init__(self, start: int = 1):
        self._start = start
        self._counters = {}

    def __call__(self, prefix: str) -> str:
        counter = self._counters.setdefault(prefix, itertools.count(self._start))
        return f"{prefix}_{next(counter)}"


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value
