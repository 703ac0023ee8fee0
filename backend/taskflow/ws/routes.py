import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session

from taskflow.core.security import decode_token
from taskflow.db.models import User
from taskflow.db.session import SessionLocal
from taskflow.services.access import can_access_project
from taskflow.ws.manager import BROADCAST_TOPIC, project_tasks_topic, project_topic, user_queue, ws_manager


logger = logging.getLogger(__name__)

router = APIRouter()


def _get_user_from_token(db: Session, token: str | None) -> User | None:
    if not token:
        return None
    payload = decode_token(token)
    if payload is None:
        return None
    return db.query(User).filter(User.username == payload["sub"]).first()


async def _serve(websocket: WebSocket, *channels: str) -> None:
    await ws_manager.connect(websocket, *channels)
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
            except ValueError:
                logger.debug("Ignoring non-JSON frame on %s", ", ".join(channels))
                continue
            if isinstance(data, dict) and data.get("type") == "ping":
                await websocket.send_json({"type": "pong"})
    except WebSocketDisconnect:
        logger.debug("Socket left %s", ", ".join(channels))
    finally:
        ws_manager.disconnect(websocket)


@router.websocket("/notifications")
async def notifications_ws(websocket: WebSocket):
    db = SessionLocal()
    try:
        user = _get_user_from_token(db, websocket.query_params.get("token"))
        user_id = user.id if user is not None else None
    finally:
        db.close()

    if user_id is None:
        await websocket.close(code=1008)
        return
    await _serve(websocket, user_queue(user_id), BROADCAST_TOPIC)


@router.websocket("/projects/{project_id}")
async def project_ws(websocket: WebSocket, project_id: int):
    if not await _authorize_project(websocket, project_id):
        return
    await _serve(websocket, project_topic(project_id))


@router.websocket("/projects/{project_id}/tasks")
async def project_tasks_ws(websocket: WebSocket, project_id: int):
    if not await _authorize_project(websocket, project_id):
        return
    await _serve(websocket, project_tasks_topic(project_id))


async def _authorize_project(websocket: WebSocket, project_id: int) -> bool:
    db = SessionLocal()
    try:
        user = _get_user_from_token(db, websocket.query_params.get("token"))
        allowed = user is not None and can_access_project(db, user, project_id)
    finally:
        db.close()

    if not allowed:
        await websocket.close(code=1008)
    return allowed
