"""Anomaly detection and alert management."""

from .anomaly_detector import AnomalyDetector
from .alert_store import AlertStore

__all__ = ["AnomalyDetector", "AlertStore"]
