"""Customer message generation with Pydantic AI and a canned fallback table."""

import asyncio
import json
import logging
import time
from enum import StrEnum

from pydantic_ai import Agent
from pydantic_ai.models.openrouter import OpenRouterModel
from pydantic_ai.providers.openrouter import OpenRouterProvider
from pydantic_ai.settings import ModelSettings

from orderflow.core.config import Constants, settings
from orderflow.core.logging import span
from orderflow.core.retry import get_generation_caller
from orderflow.domain.work_item import WorkItemStatus
from orderflow.models.service_models import RenderedMessage, WorkItemStatusView


logger = logging.getLogger(__name__)


class NotificationKind(StrEnum):
    """Kinds of customer-facing messages."""

    GENERAL_STATUS = "general_status"
    REASSIGNMENT_REASON = "reassignment_reason"
    DELAY_EXPLANATION = "delay_explanation"
    TIMEOUT_EXPLANATION = "timeout_explanation"


_KIND_KEYWORDS: list[tuple[NotificationKind, tuple[str, ...]]] = [
    (NotificationKind.DELAY_EXPLANATION, ("delay", "late", "taking so long", "atraso", "demora")),
    (
        NotificationKind.REASSIGNMENT_REASON,
        ("new driver", "another driver", "reassign", "novo motorista", "reatribuição", "reatribuicao"),
    ),
    (NotificationKind.TIMEOUT_EXPLANATION, ("cancel", "cancelar", "cancelamento")),
]


def determine_kind(query: str) -> NotificationKind:
    """Classify a customer chat message into the kind of answer it needs."""
    query_lower = query.lower()
    for kind, keywords in _KIND_KEYWORDS:
        if any(keyword in query_lower for keyword in keywords):
            return kind
    return NotificationKind.GENERAL_STATUS


def fallback_message(view: WorkItemStatusView, kind: NotificationKind) -> str:
    """Fixed text used when message generation fails or times out."""
    order_id = view.order_id
    if kind == NotificationKind.REASSIGNMENT_REASON:
        return (
            f"We are reassigning your order #{order_id} to another driver to get it to you as quickly "
            "as possible. We apologize for the inconvenience."
        )
    if kind == NotificationKind.DELAY_EXPLANATION:
        return (
            f"We apologize for the delay on your order #{order_id}. "
            "We are working to deliver it as soon as possible."
        )
    if kind == NotificationKind.TIMEOUT_EXPLANATION:
        return (
            f"Unfortunately we could not find an available driver for your order #{order_id} after several "
            "attempts. Please contact our support team for assistance."
        )
    return f"The current status of your order #{order_id} is: {view.status}. Thank you for your patience."


def build_prompt(view: WorkItemStatusView, kind: NotificationKind) -> str:
    """Build the user prompt for a message of the given kind."""
    order_id = view.order_id
    count = view.reassignment_count
    if kind == NotificationKind.REASSIGNMENT_REASON:
        prompt = (
            f"Politely explain why order #{order_id} is being reassigned to another driver. "
            f"Number of reassignments: {count}."
        )
    elif kind == NotificationKind.DELAY_EXPLANATION:
        prompt = (
            f"Explain the delay on order #{order_id}, which has been reassigned {count} times. "
            "Be empathetic and reassure the customer we are working to deliver as fast as possible."
        )
    elif kind == NotificationKind.TIMEOUT_EXPLANATION:
        prompt = (
            f"Gently explain that order #{order_id} could not be assigned after multiple attempts. "
            f"Status: {view.status}. Offer to cancel the order or try again."
        )
    else:
        prompt = f"Tell the customer the status of order #{order_id}. Current status: {view.status}."

    timeout = f"{view.offer_timeout_seconds:g}"
    prompt += (
        "\n\nThe answer must:\n"
        f"- Mention that each driver gets up to {timeout} seconds to accept\n"
        "- Explain that we reassign automatically when a driver does not respond\n"
        f"- State the number of reassignments accurately: {count}"
    )
    if view.status == WorkItemStatus.TIMED_OUT:
        prompt += "\n- Explain that all assignment attempts were exhausted"
    return prompt


def build_instructions(view: WorkItemStatusView) -> str:
    """System instructions with the order context."""
    context = json.dumps(
        {
            "order_id": view.order_id,
            "status": str(view.status),
            "reassignment_count": view.reassignment_count,
            "order_details": view.payload,
        },
        default=str,
    )
    return (
        "You are a virtual assistant for a delivery company. "
        "Explain order status to customers clearly and with empathy. "
        "Be polite and professional but friendly. Avoid technical detail; describe driver response "
        f"windows ({view.offer_timeout_seconds:g} seconds) and reassignment in simple terms.\n"
        f"Order context: {context}"
    )


class _AgentState:
    """Singleton state for the message agent."""

    instance: Agent[None, str] | None = None


def _create_agent() -> Agent[None, str]:
    api_key = settings.require_credential("openrouter_api_key", "OpenRouter API key")
    model = OpenRouterModel(
        model_name=settings.model_id,
        provider=OpenRouterProvider(api_key=api_key),
    )
    return Agent(
        model=model,
        model_settings=ModelSettings(
            temperature=Constants.MESSAGE_TEMPERATURE,
            max_tokens=Constants.MESSAGE_MAX_TOKENS,
        ),
        retries=0,  # Retries go through RetryingCaller
    )


def get_message_agent() -> Agent[None, str]:
    """Get or create the message agent instance."""
    if _AgentState.instance is None:
        _AgentState.instance = _create_agent()
    return _AgentState.instance


async def _generate(view: WorkItemStatusView, kind: NotificationKind) -> str:
    agent = get_message_agent()
    result = await agent.run(build_prompt(view, kind), instructions=build_instructions(view))
    return result.output.strip()


async def render(view: WorkItemStatusView, kind: NotificationKind) -> RenderedMessage:
    """Produce a customer message for an order, falling back to canned text.

    Never raises: generation errors and timeouts are logged and replaced by
    the fallback message for the kind.
    """
    with span("message_service.render", order_id=view.order_id, kind=str(kind)):
        start = time.monotonic()
        try:
            text = await asyncio.wait_for(
                get_generation_caller().call(
                    lambda: _generate(view, kind),
                    operation="message_service.render",
                ),
                timeout=settings.message_generation_timeout_seconds,
            )
        except Exception as e:
            logger.error(
                "Message generation failed for order %s, using fallback",
                view.order_id,
                extra={
                    "kind": str(kind),
                    "error_type": type(e).__name__,
                    "error": str(e),
                    "elapsed_ms": (time.monotonic() - start) * 1000,
                },
            )
            return RenderedMessage(
                text=fallback_message(view, kind),
                used_fallback=True,
                error=str(e) or type(e).__name__,
            )

        if not text:
            logger.warning("Empty message generated for order %s, using fallback", view.order_id)
            return RenderedMessage(text=fallback_message(view, kind), used_fallback=True, error="empty response")

        logger.info(
            "Generated %s message for order %s",
            kind,
            view.order_id,
            extra={"elapsed_ms": (time.monotonic() - start) * 1000},
        )
        return RenderedMessage(text=text)
