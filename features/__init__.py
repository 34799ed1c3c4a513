"""Behavior feature engineering package.

This package provides:
- Feature extraction from raw behavior event contexts
- Risk scoring of behavior patterns against the user's own history
"""

from .feature_extractor import FeatureExtractor, stable_hash
from .behavior_analyzer import BehaviorPatternAnalyzer, pattern_from_row

__all__ = [
    "FeatureExtractor",
    "stable_hash",
    "BehaviorPatternAnalyzer",
    "pattern_from_row",
]
