"""Sample behavior events for testing."""

from datetime import datetime, timedelta
from typing import Dict, Any, List

BASE_TIME = datetime(2024, 1, 15, 12, 0, 0)  # Monday

BROWSER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 Chrome/120.0 Safari/537.36"
SCRIPTED_AGENT = "python-requests/2.31.0"


def event_context(timestamp: datetime,
                  ip: str = "203.0.113.10",
                  user_agent: str = BROWSER_AGENT,
                  **metadata) -> Dict[str, Any]:
    """Event context as sent by the referral platform."""
    context = {"timestamp": timestamp, "ip": ip, "user_agent": user_agent}
    if metadata:
        context["metadata"] = metadata
    return context


def daily_contexts(days: int, hour: int = 12, end: datetime = BASE_TIME) -> List[Dict[str, Any]]:
    """One ordinary event per day at the same hour, oldest first."""
    start = end.replace(hour=hour) - timedelta(days=days)
    return [event_context(start + timedelta(days=i)) for i in range(days)]
