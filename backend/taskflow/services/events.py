import logging
from collections.abc import Callable
from typing import Any, Protocol


logger = logging.getLogger(__name__)


class TopicPublisher(Protocol):
    def send_project_update(self, project_id: int, payload: dict[str, Any]) -> int: ...

    def send_task_update(self, project_id: int, payload: dict[str, Any]) -> int: ...


def publish_quietly(send: Callable[[int, dict[str, Any]], int], project_id: int, payload: dict[str, Any]) -> None:
    """Live topic events are lossy; a failed push never fails the caller."""
    try:
        send(project_id, payload)
    except Exception as exc:
        logger.warning("Failed to publish %s for project %s: %s", payload.get("type"), project_id, exc)
