"""Pytest configuration and shared fixtures."""

import pytest

from orderflow.core import retry
from orderflow.core.config import settings
from orderflow.services import message_service


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Keep tests away from real credentials and external endpoints."""
    monkeypatch.setattr(settings, "openrouter_api_key", None)
    monkeypatch.setattr(settings, "customer_webhook_url", None)
    monkeypatch.setattr(settings, "customer_webhook_api_key", None)
    monkeypatch.setattr(settings, "redis_url", None)
    monkeypatch.setattr(message_service._AgentState, "instance", None)


@pytest.fixture(autouse=True)
def fresh_generation_caller(monkeypatch):
    """Start every test with a closed circuit breaker."""
    monkeypatch.setattr(retry._CallerState, "instance", None)
