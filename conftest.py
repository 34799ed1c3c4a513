"""Global pytest configuration and fixtures."""

import pytest
import os
import sys

# Add project root to Python path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

os.environ.setdefault("ENVIRONMENT", "testing")

from config import TestingConfig, DetectionSettings
from shared.ids import SequentialIdGenerator

# Import test fixtures and utilities
from tests.fixtures.database_fixtures import db_manager, storage, db_helper
from tests.fixtures.mock_objects import (
    FixedClock,
    RecordingNotificationService,
    make_risk_service,
    make_reward_ledger,
)
from tests.fixtures.test_data import BASE_TIME


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_collection_modifyitems(config, items):
    """Add markers based on test file location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


# ============================================================================
# Deterministic Capabilities
# ============================================================================

@pytest.fixture
def clock():
    """Clock fixed at a Monday noon, advanced explicitly by tests."""
    return FixedClock(BASE_TIME)


@pytest.fixture
def id_generator():
    return SequentialIdGenerator()


# ============================================================================
# Collaborator Fixtures
# ============================================================================

@pytest.fixture
def notifications():
    """Notification dispatcher that records sent messages."""
    return RecordingNotificationService()


@pytest.fixture
def risk_service():
    return make_risk_service("medium")


@pytest.fixture
def reward_ledger():
    return make_reward_ledger(25.0)


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def test_settings():
    """Testing settings, independent of the process environment."""
    return TestingConfig()


@pytest.fixture
def detection_settings():
    return DetectionSettings()
