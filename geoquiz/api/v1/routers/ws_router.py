import json
from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from geoquiz.core.logging import get_logger
from geoquiz.core.security import InvalidToken, decode_access_token
from geoquiz.core.supabase_client import get_supabase
from geoquiz.repositories.match_repository import MatchRepository
from geoquiz.repositories.question_repository import QuestionRepository
from geoquiz.services.match_service import MatchService
from geoquiz.services.question_service import QuestionService
from geoquiz.ws.match_archive import RedisMatchArchive
from geoquiz.ws.match_coordinator import MatchCoordinator
from geoquiz.ws.schemas import (
    CLIENT_MESSAGE_TYPES,
    JoinMatch,
    LeaveMatch,
    Ping,
    Pong,
    SubmitAnswer,
    parse_client_message,
)

logger = get_logger(__name__)

ws_router = APIRouter()

CLOSE_AUTH_REQUIRED = 4001
CLOSE_INVALID_TOKEN = 4002

_coordinator: Optional[MatchCoordinator] = None


def get_coordinator() -> MatchCoordinator:
    global _coordinator
    if _coordinator is None:
        client = get_supabase()
        _coordinator = MatchCoordinator(
            store=MatchService(MatchRepository(client)),
            question_source=QuestionService(QuestionRepository(client)).match_questions,
            archive=RedisMatchArchive(),
        )
    return _coordinator


async def shutdown_coordinator() -> None:
    global _coordinator
    if _coordinator is not None:
        await _coordinator.shutdown()
        _coordinator = None


@ws_router.websocket("/ws")
async def ws_endpoint(
    websocket: WebSocket,
    token: Optional[str] = Query(default=None),
    coordinator: MatchCoordinator = Depends(get_coordinator),
) -> None:
    try:
        user_id = decode_access_token(token)
    except InvalidToken as e:
        await websocket.accept()
        await websocket.close(code=CLOSE_AUTH_REQUIRED if not token else CLOSE_INVALID_TOKEN, reason=str(e))
        logger.info("Rejected realtime channel: %s", e)
        return

    await coordinator.register(user_id, websocket)

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
            except ValueError:
                await coordinator.send_error(websocket, "Invalid message format")
                continue

            t = data.get("type") if isinstance(data, dict) else None
            if t not in CLIENT_MESSAGE_TYPES:
                await coordinator.send_error(websocket, "Unknown message type")
                continue

            try:
                msg = parse_client_message(data)
            except ValidationError as e:
                logger.debug("Malformed %s from %s: %s", t, user_id, e)
                await coordinator.send_error(websocket, f"Invalid {t} message")
                continue

            if isinstance(msg, JoinMatch):
                await coordinator.join(user_id, websocket, msg.matchId)
            elif isinstance(msg, SubmitAnswer):
                await coordinator.submit_answer(user_id, websocket, msg)
            elif isinstance(msg, LeaveMatch):
                await coordinator.leave(user_id, msg.matchId)
            elif isinstance(msg, Ping):
                await coordinator.send(websocket, Pong())

    except WebSocketDisconnect:
        logger.info("Client disconnected", extra={"user": user_id})
    except Exception as e:
        logger.exception("Realtime channel failed for %s", user_id)
        await coordinator.send_error(websocket, str(e))
    finally:
        await coordinator.unregister(user_id, websocket)
