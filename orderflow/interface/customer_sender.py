"""Customer message delivery over an HTTP webhook with retry logic."""

import asyncio
import logging
from datetime import UTC, datetime

import httpx
from pydantic import BaseModel, Field

from orderflow.core.config import constants, settings


logger = logging.getLogger(__name__)


# HTTP status code constants for error handling
HTTP_CLIENT_ERROR_START = 400
HTTP_CLIENT_ERROR_END = 500


class SendMessageResult(BaseModel):
    """Result of delivering a customer message."""

    success: bool = Field(..., description="Whether the message was delivered")
    message_id: str | None = Field(None, description="Delivery ID returned by the webhook, if any")
    error: str | None = Field(None, description="Error message if failed")


async def _post_webhook(
    *,
    url: str,
    payload: dict[str, str],
    max_retries: int,
    retry_delay: float,
) -> SendMessageResult:
    """Core delivery logic with retry on server and transport errors."""
    headers = {"Content-Type": "application/json"}
    if settings.customer_webhook_api_key:
        headers["X-Api-Key"] = settings.customer_webhook_api_key

    last_error = "Max retries exceeded"
    for attempt in range(max_retries):
        try:
            async with httpx.AsyncClient(timeout=constants.API_TIMEOUT_SECONDS) as client:
                response = await client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            last_error = f"Failed after retries: {e!s}"
        else:
            if response.is_success:
                message_id = None
                if response.content:
                    try:
                        message_id = response.json().get("id")
                    except ValueError:
                        message_id = None
                return SendMessageResult(success=True, message_id=message_id)

            if HTTP_CLIENT_ERROR_START <= response.status_code < HTTP_CLIENT_ERROR_END:
                return SendMessageResult(success=False, error=f"Client error: {response.text}")

            last_error = f"Server error: {response.status_code}"

        if attempt < max_retries - 1:
            await asyncio.sleep(retry_delay * (2**attempt))

    return SendMessageResult(success=False, error=last_error)


async def send_customer_message(
    *,
    customer_id: str,
    order_id: str,
    text: str,
    max_retries: int = constants.CUSTOMER_DELIVERY_MAX_RETRIES,
    retry_delay: float = constants.CUSTOMER_DELIVERY_RETRY_DELAY_SECONDS,
) -> SendMessageResult:
    """Deliver a message to a customer.

    Without a configured webhook the message is only logged, which keeps local
    and test deployments self-contained.
    """
    if not settings.customer_webhook_url:
        logger.info(
            "Customer message (log-only delivery)",
            extra={"customer_id": customer_id, "order_id": order_id, "text": text},
        )
        return SendMessageResult(success=True)

    payload = {
        "customer_id": customer_id,
        "order_id": order_id,
        "text": text,
        "sent_at": datetime.now(UTC).isoformat(),
    }
    return await _post_webhook(
        url=settings.customer_webhook_url,
        payload=payload,
        max_retries=max_retries,
        retry_delay=retry_delay,
    )
