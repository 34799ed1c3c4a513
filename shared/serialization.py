"""JSON codecs for the free-form columns.

Every ``load_*`` function is tolerant: malformed or missing payloads yield a
safe default instead of raising, so a single corrupt row never breaks a read.
"""

import json
import logging
import math
from datetime import datetime, date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .models import AlertEvidence, ReviewEvidence, ReviewDecision

logger = logging.getLogger(__name__)


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def dumps(value: Any) -> str:
    """Serialize a structured value for a text column."""
    return json.dumps(value, default=_json_default, sort_keys=True)


def _loads(raw: Optional[str], column: str) -> Any:
    if raw is None or raw == "":
        return None
    if not isinstance(raw, (str, bytes)):
        # Some drivers hand back already-decoded JSON.
        return raw
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as e:
        logger.warning(f"Could not parse {column} payload: {e}")
        return None


def dump_features(features: Dict[str, float]) -> str:
    return dumps({key: float(value) for key, value in features.items()})


def load_features(raw: Optional[str]) -> Dict[str, float]:
    """Parse a feature map, dropping entries that are not finite numbers."""
    data = _loads(raw, "features")
    if not isinstance(data, dict):
        return {}

    features = {}
    for key, value in data.items():
        if isinstance(value, bool):
            features[str(key)] = float(value)
        elif isinstance(value, (int, float)) and math.isfinite(value):
            features[str(key)] = float(value)
    return features


def dump_alert_evidence(evidence: AlertEvidence) -> str:
    return dumps(evidence.model_dump(mode="json"))


def load_alert_evidence(raw: Optional[str]) -> AlertEvidence:
    data = _loads(raw, "evidence")
    if not isinstance(data, dict):
        return AlertEvidence()
    try:
        return AlertEvidence.model_validate(data)
    except ValidationError:
        # Unknown shape: keep the payload under metrics rather than losing it.
        return AlertEvidence(reason=str(data.get("reason", "")), metrics={"raw": data})


def dump_review_evidence(items: List[ReviewEvidence]) -> str:
    return dumps([item.model_dump(mode="json") for item in items])


def load_review_evidence(raw: Optional[str]) -> List[ReviewEvidence]:
    data = _loads(raw, "evidence")
    if not isinstance(data, list):
        return []

    items = []
    for entry in data:
        try:
            items.append(ReviewEvidence.model_validate(entry))
        except ValidationError as e:
            logger.warning(f"Skipping malformed review evidence item: {e}")
    return items


def dump_decision(decision: Optional[ReviewDecision]) -> Optional[str]:
    if decision is None:
        return None
    return dumps(decision.model_dump(mode="json"))


def load_decision(raw: Optional[str]) -> Optional[ReviewDecision]:
    data = _loads(raw, "decision")
    if not isinstance(data, dict):
        return None
    try:
        return ReviewDecision.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Ignoring malformed review decision: {e}")
        return None


def dump_frozen_features(features: List[str]) -> str:
    return dumps(sorted(set(features)))


def load_frozen_features(raw: Optional[str]) -> List[str]:
    """Parse frozen capability tags; anything but a list of strings is empty."""
    data = _loads(raw, "frozen_features")
    if not isinstance(data, list):
        return []
    return [item for item in data if isinstance(item, str)]


def dump_string_list(values: List[str]) -> str:
    return dumps(list(values))


def load_string_list(raw: Optional[str]) -> List[str]:
    data = _loads(raw, "string list")
    if not isinstance(data, list):
        return []
    return [str(item) for item in data]
