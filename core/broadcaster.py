"""
Realtime Broadcaster：以房間為單位的 WebSocket 推播

房間命名：
- exercise-{exercise_id}：訂閱某個演練的所有 client
- participant-{participant_id}：單一參與者的個人房間

規則：
- best-effort，不保證送達，也不替還沒加入的 socket 排隊
- 送出失敗的 socket 直接移除，不會讓呼叫端失敗
- 整個 process 只有一個實例（掛在 app.state），API 層透過 dependency 取得
"""
from typing import Any, Dict, Set
import logging

from fastapi import WebSocket

logger = logging.getLogger(__name__)

# ============ 事件名稱 ============

INJECT_RELEASED = "injectReleased"
RESPONSES_TOGGLED = "responsesToggled"
PHASE_PROGRESSION_TOGGLED = "phaseProgressionToggled"


def exercise_room(exercise_id: str) -> str:
    return f"exercise-{exercise_id}"


def participant_room(participant_id: str) -> str:
    return f"participant-{participant_id}"


class RealtimeBroadcaster:
    """房間 → WebSocket 集合"""

    def __init__(self):
        # 只在 event loop 內存取
        self._rooms: Dict[str, Set[WebSocket]] = {}

    async def join(self, room: str, websocket: WebSocket) -> None:
        self._rooms.setdefault(room, set()).add(websocket)
        logger.info(f"Socket joined {room} ({self.room_size(room)} in room)")

    async def leave_all(self, websocket: WebSocket) -> None:
        """斷線時把 socket 從所有房間移除"""
        for room in list(self._rooms):
            members = self._rooms[room]
            members.discard(websocket)
            if not members:
                del self._rooms[room]

    def room_size(self, room: str) -> int:
        return len(self._rooms.get(room, ()))

    async def broadcast(self, exercise_id: str, event: str, payload: Dict[str, Any]) -> int:
        """
        推播事件給演練房間內所有 socket

        訊息格式：{"event": event, "data": payload}

        返回：
            成功送出的 socket 數量
        """
        return await self.send_to_room(exercise_room(exercise_id), event, payload)

    async def send_to_room(self, room: str, event: str, payload: Dict[str, Any]) -> int:
        members = list(self._rooms.get(room, ()))

        if not members:
            logger.debug(f"No sockets in {room}, dropping {event}")
            return 0

        message = {"event": event, "data": payload}
        delivered = 0
        dead = []
        for websocket in members:
            try:
                await websocket.send_json(message)
                delivered += 1
            except Exception as e:
                logger.warning(f"Failed to send {event} to a socket in {room}: {e}")
                dead.append(websocket)

        if dead:
            for websocket in dead:
                self._rooms.get(room, set()).discard(websocket)
            logger.warning(f"Dropped {len(dead)} dead socket(s) from {room}")

        logger.info(f"Broadcast {event} to {delivered} socket(s) in {room}")
        return delivered
