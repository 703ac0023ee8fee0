import asyncio
import logging
from collections import defaultdict
from typing import Any

import anyio
from fastapi import WebSocket


logger = logging.getLogger(__name__)

BROADCAST_TOPIC = "/topic/notifications"


def user_queue(user_id: int) -> str:
    return f"/user/{user_id}/queue/notifications"


def project_topic(project_id: int) -> str:
    return f"/topic/projects/{project_id}"


def project_tasks_topic(project_id: int) -> str:
    return f"/topic/projects/{project_id}/tasks"


class WSManager:
    """In-process pub/sub: channels map to the sockets subscribed to them."""

    def __init__(self) -> None:
        self.rooms: dict[str, set[WebSocket]] = defaultdict(set)

    async def connect(self, websocket: WebSocket, *channels: str) -> None:
        await websocket.accept()
        for channel in channels:
            self.rooms[channel].add(websocket)

    def leave(self, channel: str, websocket: WebSocket) -> None:
        if channel in self.rooms and websocket in self.rooms[channel]:
            self.rooms[channel].remove(websocket)
            if not self.rooms[channel]:
                del self.rooms[channel]

    def disconnect(self, websocket: WebSocket) -> None:
        for channel in list(self.rooms):
            self.leave(channel, websocket)

    def subscriber_count(self, channel: str) -> int:
        return len(self.rooms.get(channel, ()))

    def publish(self, channel: str, payload: dict[str, Any]) -> int:
        """Schedule ``payload`` for every socket on ``channel``; returns the fan-out size.

        Works from the event loop (schedules tasks) and from AnyIO worker
        threads, where sync route handlers run (hands off to the loop).
        """
        sockets = list(self.rooms.get(channel, set()))
        for ws in sockets:
            try:
                asyncio.get_running_loop()
            except RuntimeError:
                anyio.from_thread.run(self._safe_send, channel, ws, payload)
            else:
                asyncio.create_task(self._safe_send(channel, ws, payload))
        logger.debug("Published %s to %s (%d subscribers)", payload.get("type"), channel, len(sockets))
        return len(sockets)

    def send_to_user(self, user_id: int, payload: dict[str, Any]) -> int:
        return self.publish(user_queue(user_id), payload)

    def broadcast(self, payload: dict[str, Any]) -> int:
        return self.publish(BROADCAST_TOPIC, payload)

    def send_project_update(self, project_id: int, payload: dict[str, Any]) -> int:
        return self.publish(project_topic(project_id), payload)

    def send_task_update(self, project_id: int, payload: dict[str, Any]) -> int:
        return self.publish(project_tasks_topic(project_id), payload)

    async def _safe_send(self, channel: str, websocket: WebSocket, payload: dict[str, Any]) -> None:
        try:
            await websocket.send_json(payload)
        except Exception:
            logger.info("Dropping dead socket from %s", channel)
            self.disconnect(websocket)


ws_manager = WSManager()
