from __future__ import annotations

import asyncio

from fastapi.testclient import TestClient

from core.broadcaster import RealtimeBroadcaster


def _exercise_with_inject(client: TestClient, headers) -> str:
    exercise_id = client.post("/api/exercises", json={"title": "Drill"}, headers=headers).json()["exercise"]["id"]
    client.post(f"/api/exercises/{exercise_id}/injects", json={"title": "Breach detected"}, headers=headers)
    return exercise_id


def test_joined_socket_receives_lifecycle_events(client: TestClient, owner_headers) -> None:
    exercise_id = _exercise_with_inject(client, owner_headers)

    with client.websocket_connect("/ws") as ws:
        ws.send_json({"type": "joinExercise", "exerciseId": exercise_id})
        assert ws.receive_json() == {"event": "joined", "data": {"room": f"exercise-{exercise_id}"}}

        client.post(f"/api/exercises/{exercise_id}/release-inject", json={"injectNumber": 1}, headers=owner_headers)
        released = ws.receive_json()
        assert released["event"] == "injectReleased"
        assert released["data"]["injectNumber"] == 1
        assert released["data"]["inject"]["responsesOpen"] is True

        client.post(
            f"/api/exercises/{exercise_id}/toggle-responses",
            json={"injectNumber": 1, "responsesOpen": False},
            headers=owner_headers,
        )
        assert ws.receive_json() == {
            "event": "responsesToggled",
            "data": {"injectNumber": 1, "responsesOpen": False},
        }


def test_participant_room_join_and_unknown_messages(client: TestClient) -> None:
    with client.websocket_connect("/ws") as ws:
        ws.send_json({"type": "subscribe"})
        assert ws.receive_json()["event"] == "error"

        ws.send_json({"type": "joinAsParticipant"})
        assert ws.receive_json()["event"] == "error"

        ws.send_json({"type": "joinAsParticipant", "participantId": "P-ABC12345"})
        assert ws.receive_json() == {"event": "joined", "data": {"room": "participant-P-ABC12345"}}


def test_broadcast_without_subscribers_is_a_no_op() -> None:
    broadcaster = RealtimeBroadcaster()

    delivered = asyncio.run(broadcaster.broadcast("nobody", "injectReleased", {"injectNumber": 1}))

    assert delivered == 0


class _BrokenSocket:
    async def send_json(self, message):
        raise RuntimeError("connection reset")


class _Socket:
    def __init__(self) -> None:
        self.sent = []

    async def send_json(self, message):
        self.sent.append(message)


def test_broadcast_drops_dead_sockets_and_keeps_delivering() -> None:
    broadcaster = RealtimeBroadcaster()
    healthy, broken = _Socket(), _BrokenSocket()

    async def scenario() -> int:
        await broadcaster.join("exercise-e1", healthy)
        await broadcaster.join("exercise-e1", broken)
        return await broadcaster.broadcast("e1", "phaseProgressionToggled", {"injectNumber": 2})

    delivered = asyncio.run(scenario())

    assert delivered == 1
    assert healthy.sent == [{"event": "phaseProgressionToggled", "data": {"injectNumber": 2}}]
    assert broadcaster.room_size("exercise-e1") == 1


def test_leave_all_removes_socket_from_every_room() -> None:
    broadcaster = RealtimeBroadcaster()
    socket = _Socket()

    async def scenario() -> None:
        await broadcaster.join("exercise-e1", socket)
        await broadcaster.join("participant-P-1", socket)
        await broadcaster.leave_all(socket)

    asyncio.run(scenario())

    assert broadcaster.room_size("exercise-e1") == 0
    assert broadcaster.room_size("participant-P-1") == 0


def test_non_json_frame_keeps_connection_open(client: TestClient) -> None:
    with client.websocket_connect("/ws") as ws:
        ws.send_text("not json")
        assert ws.receive_json() == {"event": "error", "data": {"message": "Invalid JSON"}}

        ws.send_json({"type": "joinAsParticipant", "participantId": "P-ABC12345"})
        assert ws.receive_json() == {"event": "joined", "data": {"room": "participant-P-ABC12345"}}
