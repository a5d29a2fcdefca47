"""Order endpoints: creation, lookup, driver assignment and driver responses."""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, status

from orderflow.domain.create_models import OfferCreate, OfferResponseCreate, WorkItemCreate
from orderflow.interface.dependencies import get_engine
from orderflow.services.assignment_engine import AssignmentEngine


router = APIRouter(prefix="/orders", tags=["orders"])
logger = logging.getLogger(__name__)

EngineDep = Annotated[AssignmentEngine, Depends(get_engine)]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_order(body: WorkItemCreate, engine: EngineDep) -> dict[str, Any]:
    """Create a new PENDING order."""
    item = await engine.create_work_item(owner_id=body.customer_id, payload=body.order_details)
    return {"success": True, "order": item.model_dump(mode="json")}


@router.get("/{order_id}")
async def get_order(order_id: str, engine: EngineDep) -> dict[str, Any]:
    """Return the full order snapshot, including assignment history."""
    item = await engine.get_work_item(order_id)
    return {"success": True, "order": item.model_dump(mode="json")}


@router.get("/{order_id}/status")
async def get_order_status(order_id: str, engine: EngineDep) -> dict[str, Any]:
    """Return order status with reassignment history."""
    view = await engine.get_status(order_id)
    return {"success": True, "order_status": view.model_dump(mode="json")}


@router.post("/{order_id}/assign")
async def assign_order(order_id: str, body: OfferCreate, engine: EngineDep) -> dict[str, Any]:
    """Offer the order to a driver and start the response deadline."""
    item = await engine.offer(order_id, body.driver_id)
    return {
        "success": True,
        "message": f"Order {order_id} assigned to driver {body.driver_id}",
        "order": item.model_dump(mode="json"),
    }


@router.post("/{order_id}/driver-response")
async def driver_response(order_id: str, body: OfferResponseCreate, engine: EngineDep) -> dict[str, Any]:
    """Record a driver's accept/reject.

    Stale or duplicate responses are acknowledged with the unchanged order.
    """
    item = await engine.respond_to_offer(order_id, body.driver_id, accepted=body.accepted)
    verb = "accepted" if body.accepted else "rejected"
    return {
        "success": True,
        "message": f"Driver {body.driver_id} {verb} order {order_id}",
        "order": item.model_dump(mode="json"),
    }
