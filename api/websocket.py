"""
WebSocket Endpoint：即時推播頻道

Client 送出：
    {"type": "joinExercise", "exerciseId": "..."}        加入演練房間
    {"type": "joinAsParticipant", "participantId": "..."} 加入個人房間

Server 回覆：
    {"event": "joined", "data": {"room": "exercise-..."}}
    {"event": "error", "data": {"message": "..."}}

之後由 API 層推播 injectReleased / responsesToggled / phaseProgressionToggled。
Socket 層不做認證。
"""
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
import logging

from core.broadcaster import exercise_room, participant_room

router = APIRouter(tags=["realtime"])
logger = logging.getLogger(__name__)

JOIN_MESSAGES = {
    "joinExercise": ("exerciseId", exercise_room),
    "joinAsParticipant": ("participantId", participant_room),
}


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket):
    broadcaster = websocket.app.state.broadcaster
    await websocket.accept()
    logger.info("New realtime client connected")

    try:
        while True:
            try:
                data = await websocket.receive_json()
            except ValueError:
                # 非 JSON 的 frame 只回錯誤，連線保持
                await websocket.send_json({"event": "error", "data": {"message": "Invalid JSON"}})
                continue

            message_type = data.get("type") if isinstance(data, dict) else None

            if message_type not in JOIN_MESSAGES:
                await websocket.send_json({"event": "error", "data": {"message": "Unknown message type"}})
                continue

            key, room_for = JOIN_MESSAGES[message_type]
            identifier = data.get(key)
            if not identifier:
                await websocket.send_json({"event": "error", "data": {"message": f"Missing {key}"}})
                continue

            room = room_for(str(identifier))
            await broadcaster.join(room, websocket)
            await websocket.send_json({"event": "joined", "data": {"room": room}})

    except WebSocketDisconnect:
        logger.info("Realtime client disconnected")
    except Exception as e:
        logger.error(f"Realtime socket error: {e}", exc_info=True)
    finally:
        await broadcaster.leave_all(websocket)
