"""Customer chat endpoint answering questions about an order."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from orderflow.domain.create_models import ChatQueryCreate
from orderflow.interface.dependencies import get_dispatcher, get_engine
from orderflow.models.service_models import ChatReply
from orderflow.services.assignment_engine import AssignmentEngine
from orderflow.services.notification_service import NotificationDispatcher


router = APIRouter(prefix="/chat", tags=["chat"])
logger = logging.getLogger(__name__)


@router.post("")
async def handle_chat_query(
    body: ChatQueryCreate,
    engine: Annotated[AssignmentEngine, Depends(get_engine)],
    dispatcher: Annotated[NotificationDispatcher, Depends(get_dispatcher)],
) -> ChatReply:
    """Classify the customer's message and answer it from the order's current status."""
    logger.info(
        "Received chat query for order %s",
        body.order_id,
        extra={"customer_id": body.customer_id, "message_length": len(body.message)},
    )
    view = await engine.get_status(body.order_id)
    return await dispatcher.handle_chat_query(view=view, customer_id=body.customer_id, query=body.message)
