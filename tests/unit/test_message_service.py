"""Unit tests for customer message generation."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from orderflow.core.config import settings
from orderflow.domain.work_item import (
    Assignment,
    ReassignmentEvent,
    ReassignmentReason,
    WorkItem,
    WorkItemStatus,
)
from orderflow.models.service_models import WorkItemStatusView
from orderflow.services import message_service
from orderflow.services.message_service import NotificationKind


@pytest.fixture
def view():
    item = WorkItem(
        id="order-9",
        owner_id="customer-1",
        payload={"items": ["sushi"], "total": 30},
        assignment_history=[Assignment(candidate_id="d1"), Assignment(candidate_id="d2")],
        reassignment_log=[
            ReassignmentEvent(previous_candidate_id="d1", new_candidate_id="d2", reason=ReassignmentReason.TIMEOUT)
        ],
    )
    return WorkItemStatusView.from_work_item(item)


@pytest.mark.unit
class TestDetermineKind:
    @pytest.mark.parametrize(
        ("query", "expected"),
        [
            ("Why is my order so late?", NotificationKind.DELAY_EXPLANATION),
            ("Por que a demora?", NotificationKind.DELAY_EXPLANATION),
            ("Why did I get a new driver?", NotificationKind.REASSIGNMENT_REASON),
            ("Houve reatribuição?", NotificationKind.REASSIGNMENT_REASON),
            ("I want to cancel", NotificationKind.TIMEOUT_EXPLANATION),
            ("Where is my food?", NotificationKind.GENERAL_STATUS),
        ],
    )
    def test_classification(self, query, expected):
        assert message_service.determine_kind(query) == expected


@pytest.mark.unit
class TestFallbackMessages:
    @pytest.mark.parametrize("kind", list(NotificationKind))
    def test_every_kind_has_fallback_mentioning_order(self, view, kind):
        text = message_service.fallback_message(view, kind)

        assert "#order-9" in text

    def test_general_status_mentions_status(self, view):
        text = message_service.fallback_message(view, NotificationKind.GENERAL_STATUS)

        assert "pending" in text


@pytest.mark.unit
class TestPrompts:
    def test_prompt_carries_count_and_timeout(self, view):
        prompt = message_service.build_prompt(view, NotificationKind.REASSIGNMENT_REASON)

        assert "order-9" in prompt
        assert "15 seconds" in prompt
        assert "Number of reassignments: 1" in prompt
        assert "exhausted" not in prompt

    def test_prompt_for_timed_out_order_mentions_exhaustion(self, view):
        timed_out = view.model_copy(update={"status": WorkItemStatus.TIMED_OUT})

        prompt = message_service.build_prompt(timed_out, NotificationKind.TIMEOUT_EXPLANATION)

        assert "all assignment attempts were exhausted" in prompt

    def test_instructions_include_order_context(self, view):
        instructions = message_service.build_instructions(view)

        assert '"order_id": "order-9"' in instructions
        assert "sushi" in instructions


@pytest.mark.unit
class TestRender:
    async def test_missing_credential_falls_back(self, view):
        rendered = await message_service.render(view, NotificationKind.DELAY_EXPLANATION)

        assert rendered.used_fallback is True
        assert rendered.text == message_service.fallback_message(view, NotificationKind.DELAY_EXPLANATION)
        assert rendered.error

    async def test_generated_text_is_used(self, monkeypatch, view):
        monkeypatch.setattr(message_service, "_generate", AsyncMock(return_value="Your driver is on the way."))

        rendered = await message_service.render(view, NotificationKind.GENERAL_STATUS)

        assert rendered.used_fallback is False
        assert rendered.text == "Your driver is on the way."

    async def test_empty_generation_falls_back(self, monkeypatch, view):
        monkeypatch.setattr(message_service, "_generate", AsyncMock(return_value=""))

        rendered = await message_service.render(view, NotificationKind.GENERAL_STATUS)

        assert rendered.used_fallback is True
        assert rendered.error == "empty response"

    async def test_slow_generation_times_out_to_fallback(self, monkeypatch, view):
        async def slow_generate(_view, _kind):
            await asyncio.sleep(5)
            return "too late"

        monkeypatch.setattr(message_service, "_generate", slow_generate)
        monkeypatch.setattr(settings, "message_generation_timeout_seconds", 0.05)

        rendered = await message_service.render(view, NotificationKind.REASSIGNMENT_REASON)

        assert rendered.used_fallback is True
        assert rendered.text == message_service.fallback_message(view, NotificationKind.REASSIGNMENT_REASON)
