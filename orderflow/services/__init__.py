from orderflow.services import (
    assignment_engine,
    message_service,
    notification_service,
    work_item_state_machine,
)


__all__ = [
    "assignment_engine",
    "message_service",
    "notification_service",
    "work_item_state_machine",
]
