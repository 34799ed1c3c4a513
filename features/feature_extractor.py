"""Feature extraction for behavior events.

Turns a raw event context (timestamp, IP, user agent, free-form metadata) into
a flat ``str -> float`` feature map. Temporal and frequency features are
relative to the user's own pattern history.
"""

import logging
import math
import zlib
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Optional, Sequence

from config.detection import ScoringConfig
from shared.ids import to_naive_utc
from shared.models import BehaviorPattern

logger = logging.getLogger(__name__)

HOUR_OF_DAY = "hour_of_day"
DAY_OF_WEEK = "day_of_week"
DAILY_FREQUENCY = "daily_frequency"
SECONDS_SINCE_LAST = "seconds_since_last"
IS_NIGHT = "is_night"
IP_HASH = "ip_hash"
USER_AGENT_HASH = "user_agent_hash"
AUTOMATED_AGENT = "automated_agent"
META_PREFIX = "meta_"
EVENT_RATE = "event_rate"

# Hashed identifiers: compared by equality, never by distance.
CATEGORICAL_FEATURES = (IP_HASH, USER_AGENT_HASH)

AUTOMATED_AGENT_MARKERS = (
    "bot", "crawler", "spider", "headless", "phantomjs", "selenium",
    "puppeteer", "playwright", "curl", "wget", "python-requests",
    "httpclient", "scrapy", "automated",
)

HASH_BUCKETS = 1000


def stable_hash(value: str, buckets: int = HASH_BUCKETS) -> int:
    """Process-independent hash of a string into ``[0, buckets)``."""
    return zlib.crc32(value.encode("utf-8")) % buckets


def _coerce_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


class FeatureExtractor:
    """Extracts numeric behavior features from an event context."""

    def __init__(self, config: Optional[ScoringConfig] = None):
        self.config = config or ScoringConfig()

    def resolve_event_time(self, context: Dict[str, Any], now: datetime) -> datetime:
        """Event time from ``context['timestamp']``, falling back to ``now``.

        Accepts datetimes, ISO-8601 strings and epoch seconds.
        """
        raw = context.get("timestamp")
        if raw is None:
            return now

        try:
            if isinstance(raw, datetime):
                return to_naive_utc(raw)
            if isinstance(raw, (int, float)) and not isinstance(raw, bool):
                return datetime.fromtimestamp(raw, tz=timezone.utc).replace(tzinfo=None)
            if isinstance(raw, str):
                return to_naive_utc(datetime.fromisoformat(raw.replace("Z", "+00:00")))
        except (ValueError, OverflowError, OSError) as e:
            logger.warning(f"Invalid event timestamp {raw!r}, using current time: {e}")
            return now

        logger.warning(f"Unsupported event timestamp type {type(raw).__name__}, using current time")
        return now

    def is_night(self, hour: int) -> bool:
        return hour < self.config.night_end_hour or hour > self.config.night_start_hour

    @staticmethod
    def is_automated_agent(user_agent: str) -> bool:
        lowered = user_agent.lower()
        return any(marker in lowered for marker in AUTOMATED_AGENT_MARKERS)

    def extract(self,
                context: Dict[str, Any],
                history: Sequence[BehaviorPattern],
                now: datetime) -> Dict[str, float]:
        """Extract the feature map for one event.

        Args:
            context: Raw event context
            history: The user's earlier patterns, any order
            now: Ingest time; history timestamps and frequency features are
                relative to it, and it stands in for a missing event timestamp

        Returns:
            Dictionary of numeric features
        """
        event_time = self.resolve_event_time(context, now)
        features: Dict[str, float] = {}

        # Temporal features
        features[HOUR_OF_DAY] = float(event_time.hour)
        features[DAY_OF_WEEK] = float(event_time.weekday())  # 0=Monday
        features[IS_NIGHT] = 1.0 if self.is_night(event_time.hour) else 0.0

        # Frequency features
        window = timedelta(hours=self.config.frequency_window_hours)
        earlier = [p.timestamp for p in history if p.timestamp <= now]
        features[DAILY_FREQUENCY] = float(sum(1 for ts in earlier if now - ts < window))
        if earlier:
            features[SECONDS_SINCE_LAST] = (now - max(earlier)).total_seconds()

        # Context features
        ip = context.get("ip") or context.get("ip_address")
        if ip:
            features[IP_HASH] = float(stable_hash(str(ip)))

        user_agent = context.get("user_agent") or context.get("userAgent")
        if user_agent:
            features[USER_AGENT_HASH] = float(stable_hash(str(user_agent)))
            features[AUTOMATED_AGENT] = 1.0 if self.is_automated_agent(str(user_agent)) else 0.0

        metadata = context.get("metadata") or {}
        if isinstance(metadata, dict):
            for key, value in metadata.items():
                number = _coerce_number(value)
                if number is not None:
                    features[f"{META_PREFIX}{key}"] = number

        return features

    @staticmethod
    def continuous_values(features: Dict[str, float]) -> Dict[str, float]:
        """Features whose deviation from history is measured by distance.

        ``seconds_since_last`` enters as ``event_rate`` (events per hour) so
        that bursts, not pauses, read as large values.
        """
        values = {}
        for name in (HOUR_OF_DAY, DAILY_FREQUENCY):
            if name in features:
                values[name] = features[name]
        if SECONDS_SINCE_LAST in features:
            values[EVENT_RATE] = 3600.0 / max(features[SECONDS_SINCE_LAST], 1.0)
        for name in sorted(features):
            if name.startswith(META_PREFIX):
                values[name] = features[name]
        return values
