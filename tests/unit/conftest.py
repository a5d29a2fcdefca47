"""Pytest configuration and fixtures for unit tests."""

import pytest

from orderflow.services.assignment_engine import AssignmentEngine
from tests.unit.mocks import FakeDeadlineTimers, FlakyWorkItemStore, ListCandidateProvider, RecordingListener


DRIVERS = ["driver-a", "driver-b", "driver-c", "driver-d", "driver-e", "driver-f"]


@pytest.fixture
def store():
    """Provides a fresh in-memory store that can simulate outages."""
    return FlakyWorkItemStore()


@pytest.fixture
def timers():
    return FakeDeadlineTimers()


@pytest.fixture
def listener():
    return RecordingListener()


@pytest.fixture
def provider():
    return ListCandidateProvider(DRIVERS)


@pytest.fixture
def engine(store, timers, listener, provider):
    """Engine with a 15s offer window and five attempts, driven by fake timers."""
    return AssignmentEngine(
        store=store,
        candidate_provider=provider,
        timers=timers,
        listener=listener,
        offer_timeout_seconds=15.0,
        max_attempts=5,
    )
