from __future__ import annotations

from typing import Dict, Tuple

from fastapi.testclient import TestClient

PHASES = [
    {"id": "triage", "title": "Triage", "points": 10, "correctAnswer": "isolate"},
    {"id": "comms", "title": "Communications", "points": 5},
]


def _setup(client: TestClient, headers: Dict[str, str], **exercise_fields) -> Tuple[str, str]:
    body = {"title": "Ransomware tabletop", **exercise_fields}
    exercise = client.post("/api/exercises", json=body, headers=headers).json()["exercise"]
    client.post(
        f"/api/exercises/{exercise['id']}/injects",
        json={"title": "Breach detected", "narrative": "EDR alert on FIN-42", "phases": PHASES},
        headers=headers,
    )
    return exercise["id"], exercise["accessCode"]


def _join(client: TestClient, access_code: str, name: str = "Alice") -> dict:
    response = client.post("/api/participants/join", json={"accessCode": access_code, "name": name, "team": "Blue"})
    assert response.status_code == 201
    return response.json()


def _release(client: TestClient, headers: Dict[str, str], exercise_id: str, number: int = 1) -> None:
    response = client.post(
        f"/api/exercises/{exercise_id}/release-inject", json={"injectNumber": number}, headers=headers
    )
    assert response.status_code == 200


def test_join_with_lowercase_access_code(client: TestClient, owner_headers) -> None:
    exercise_id, code = _setup(client, owner_headers)

    participant = _join(client, code.lower())

    assert participant["exerciseId"] == exercise_id
    assert participant["participantId"].startswith("P-")
    assert participant["status"] == "active"
    assert participant["currentInject"] == 0
    assert participant["currentPhase"] == 1
    assert participant["totalScore"] == 0


def test_join_unknown_code(client: TestClient) -> None:
    response = client.post("/api/participants/join", json={"accessCode": "NOPE1234", "name": "Alice"})
    assert response.status_code == 404


def test_join_rejected_when_full_or_completed(client: TestClient, owner_headers) -> None:
    exercise_id, code = _setup(client, owner_headers, maxParticipants=1)
    _join(client, code)

    full = client.post("/api/participants/join", json={"accessCode": code, "name": "Bob"})
    assert full.status_code == 400

    client.put(f"/api/exercises/{exercise_id}", json={"status": "completed", "maxParticipants": 10}, headers=owner_headers)
    completed = client.post("/api/participants/join", json={"accessCode": code, "name": "Carol"})
    assert completed.status_code == 400


def test_late_joiner_starts_on_latest_released_inject(client: TestClient, owner_headers) -> None:
    exercise_id, code = _setup(client, owner_headers)
    _release(client, owner_headers, exercise_id)

    participant = _join(client, code)

    assert participant["currentInject"] == 1


def test_release_moves_participants_to_phase_one(client: TestClient, owner_headers) -> None:
    exercise_id, code = _setup(client, owner_headers)
    client.post(
        f"/api/exercises/{exercise_id}/injects", json={"title": "Ransom note", "phases": PHASES}, headers=owner_headers
    )
    _release(client, owner_headers, exercise_id, 1)
    pid = _join(client, code)["participantId"]
    client.post(f"/api/participants/{pid}/advance-phase")

    _release(client, owner_headers, exercise_id, 2)

    participant = client.get(f"/api/participants/{pid}").json()
    assert participant["currentInject"] == 2
    assert participant["currentPhase"] == 1


def test_current_inject_hidden_until_released(client: TestClient, owner_headers) -> None:
    exercise_id, code = _setup(client, owner_headers)
    pid = _join(client, code)["participantId"]

    assert client.get(f"/api/participants/{pid}/inject").status_code == 404

    _release(client, owner_headers, exercise_id)
    inject = client.get(f"/api/participants/{pid}/inject").json()

    assert inject["title"] == "Breach detected"
    assert inject["isActive"] is True


def test_submit_response_flow(client: TestClient, owner_headers) -> None:
    exercise_id, code = _setup(client, owner_headers)
    pid = _join(client, code)["participantId"]
    answer = {"injectNumber": 1, "phaseId": "triage", "content": "Isolate"}

    not_released = client.post(f"/api/participants/{pid}/responses", json=answer)
    assert not_released.status_code == 400

    _release(client, owner_headers, exercise_id)
    accepted = client.post(f"/api/participants/{pid}/responses", json=answer)
    assert accepted.status_code == 201
    assert accepted.json()["response"]["pointsEarned"] == 10
    assert accepted.json()["totalScore"] == 10

    duplicate = client.post(f"/api/participants/{pid}/responses", json=answer)
    assert duplicate.status_code == 400

    unknown_phase = client.post(
        f"/api/participants/{pid}/responses", json={"injectNumber": 1, "phaseId": "nope", "content": "x"}
    )
    assert unknown_phase.status_code == 400

    client.post(
        f"/api/exercises/{exercise_id}/toggle-responses",
        json={"injectNumber": 1, "responsesOpen": False},
        headers=owner_headers,
    )
    closed = client.post(
        f"/api/participants/{pid}/responses", json={"injectNumber": 1, "phaseId": "comms", "content": "Notify legal"}
    )
    assert closed.status_code == 400

    participant = client.get(f"/api/participants/{pid}").json()
    assert participant["totalScore"] == 10
    assert [r["phaseId"] for r in participant["responses"]] == ["triage"]


def test_scoring_disabled_awards_nothing(client: TestClient, owner_headers) -> None:
    exercise_id, code = _setup(client, owner_headers, settings={"scoringEnabled": False})
    _release(client, owner_headers, exercise_id)
    pid = _join(client, code)["participantId"]

    response = client.post(
        f"/api/participants/{pid}/responses", json={"injectNumber": 1, "phaseId": "triage", "content": "isolate"}
    )

    assert response.status_code == 201
    assert response.json()["response"]["pointsEarned"] == 0


def test_hidden_scores(client: TestClient, owner_headers) -> None:
    exercise_id, code = _setup(client, owner_headers, settings={"showScores": False})
    _release(client, owner_headers, exercise_id)
    pid = _join(client, code)["participantId"]

    response = client.post(
        f"/api/participants/{pid}/responses", json={"injectNumber": 1, "phaseId": "triage", "content": "isolate"}
    )

    assert response.json()["totalScore"] is None
    assert client.get(f"/api/participants/{pid}").json()["totalScore"] is None


def test_advance_phase_respects_lock_and_last_phase(client: TestClient, owner_headers) -> None:
    exercise_id, code = _setup(client, owner_headers)
    pid = _join(client, code)["participantId"]

    before_release = client.post(f"/api/participants/{pid}/advance-phase")
    assert before_release.status_code == 400

    _release(client, owner_headers, exercise_id)
    client.post(
        f"/api/exercises/{exercise_id}/toggle-phase-lock",
        json={"injectNumber": 1, "phaseProgressionLocked": True},
        headers=owner_headers,
    )
    locked = client.post(f"/api/participants/{pid}/advance-phase")
    assert locked.status_code == 423

    client.post(
        f"/api/exercises/{exercise_id}/toggle-phase-lock",
        json={"injectNumber": 1, "phaseProgressionLocked": False},
        headers=owner_headers,
    )
    advanced = client.post(f"/api/participants/{pid}/advance-phase")
    assert advanced.status_code == 200
    assert advanced.json()["currentPhase"] == 2

    last = client.post(f"/api/participants/{pid}/advance-phase")
    assert last.status_code == 400


def test_unknown_participant(client: TestClient) -> None:
    assert client.get("/api/participants/P-MISSING1").status_code == 404
    assert client.post("/api/participants/P-MISSING1/advance-phase").status_code == 404
