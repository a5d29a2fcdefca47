"""Pydantic models for request bodies accepted by the HTTP interface."""

from typing import Any

from pydantic import BaseModel, Field, field_validator


class WorkItemCreate(BaseModel):
    """Pydantic model for creating an order."""

    customer_id: str = Field(..., min_length=1, description="Customer placing the order")
    order_details: dict[str, Any] = Field(..., description="Items, total amount and delivery address")


class OfferCreate(BaseModel):
    """Pydantic model for offering an order to a driver."""

    driver_id: str = Field(..., min_length=1, description="Driver to offer the order to")


class OfferResponseCreate(BaseModel):
    """Pydantic model for a driver's answer to an offer."""

    driver_id: str = Field(..., min_length=1, description="Driver answering the offer")
    accepted: bool = Field(..., description="True to accept, False to reject")


class ChatQueryCreate(BaseModel):
    """Pydantic model for a customer chat query about an order."""

    order_id: str = Field(..., min_length=1)
    customer_id: str = Field(..., min_length=1)
    message: str = Field(..., description="Customer message text")

    @field_validator("message")
    @classmethod
    def validate_message_not_blank(cls, v: str) -> str:
        """Reject empty or whitespace-only messages."""
        if not v.strip():
            msg = "Message must not be empty"
            raise ValueError(msg)
        return v
