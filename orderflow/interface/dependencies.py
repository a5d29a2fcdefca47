"""FastAPI dependencies resolving the process-wide engine and dispatcher."""

from fastapi import Request

from orderflow.services.assignment_engine import AssignmentEngine
from orderflow.services.notification_service import NotificationDispatcher


def get_engine(request: Request) -> AssignmentEngine:
    return request.app.state.engine


def get_dispatcher(request: Request) -> NotificationDispatcher:
    return request.app.state.dispatcher
