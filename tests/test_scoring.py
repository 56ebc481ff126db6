from __future__ import annotations

from types import SimpleNamespace

from sqlalchemy.orm import Session

from core.exercise_manager import ExerciseManager
from core.participant_manager import ParticipantManager
from models import Participant, ParticipantStatus, Response
from services.phase_service import can_advance, find_phase, phase_count
from services.scoring_service import compute_inject_scores, compute_leaderboard, score_response


def _exercise_with_scores(db: Session, scores: list[int]):
    exercise = ExerciseManager.create_exercise(db, facilitator_id="facilitator-1", title="Tabletop")
    for index, score in enumerate(scores):
        joined = ParticipantManager.join_exercise(db, exercise.access_code, f"Player {index}", "Blue")
        participant = db.query(Participant).filter(Participant.participant_id == joined.participant_id).one()
        participant.total_score = score
    db.commit()
    return exercise


def test_leaderboard_orders_by_total_score(db: Session) -> None:
    exercise = _exercise_with_scores(db, [30, 50, 50, 10])

    board = compute_leaderboard(db, exercise)

    assert [entry["total_score"] for entry in board["leaderboard"]] == [50, 50, 30, 10]
    assert board["average_score"] == 35
    assert board["total_participants"] == 4
    assert board["exercise_title"] == "Tabletop"


def test_leaderboard_ties_keep_join_order(db: Session) -> None:
    exercise = _exercise_with_scores(db, [30, 50, 50, 10])

    board = compute_leaderboard(db, exercise)

    assert [entry["name"] for entry in board["leaderboard"]] == [
        "Player 1",
        "Player 2",
        "Player 0",
        "Player 3",
    ]


def test_leaderboard_without_participants(db: Session) -> None:
    exercise = ExerciseManager.create_exercise(db, facilitator_id="facilitator-1", title="Empty")

    board = compute_leaderboard(db, exercise)

    assert board["leaderboard"] == []
    assert board["average_score"] == 0
    assert board["total_participants"] == 0


def test_leaderboard_ignores_inactive_participants(db: Session) -> None:
    exercise = _exercise_with_scores(db, [40, 20])
    dropped = db.query(Participant).filter(Participant.total_score == 20).one()
    dropped.status = ParticipantStatus.REMOVED
    db.commit()

    board = compute_leaderboard(db, exercise)

    assert board["total_participants"] == 1
    assert board["average_score"] == 40


def test_leaderboard_trusts_stored_total_and_breaks_down_by_inject(db: Session) -> None:
    exercise = _exercise_with_scores(db, [99])
    participant = db.query(Participant).one()
    db.add_all(
        [
            Response(participant_pk=participant.id, inject_number=1, phase_id="1", content="a", points_earned=5),
            Response(participant_pk=participant.id, inject_number=1, phase_id="2", content="b", points_earned=3),
            Response(participant_pk=participant.id, inject_number=2, phase_id="1", content="c", points_earned=10),
        ]
    )
    db.commit()

    entry = compute_leaderboard(db, exercise)["leaderboard"][0]

    assert entry["total_score"] == 99
    assert entry["inject_scores"] == {1: 8, 2: 10}


def test_compute_inject_scores_groups_by_inject() -> None:
    responses = [
        SimpleNamespace(inject_number=2, points_earned=4),
        SimpleNamespace(inject_number=1, points_earned=1),
        SimpleNamespace(inject_number=2, points_earned=6),
    ]

    assert compute_inject_scores(responses) == {2: 10, 1: 1}
    assert compute_inject_scores([]) == {}


def test_score_response_rules() -> None:
    enabled = SimpleNamespace(settings={"scoring_enabled": True})
    disabled = SimpleNamespace(settings={"scoring_enabled": False})
    open_question = {"id": "1", "points": 5}
    graded = {"id": "2", "points": 10, "correctAnswer": "Isolate the host"}

    assert score_response(enabled, open_question, "anything") == 5
    assert score_response(enabled, graded, "  isolate the HOST ") == 10
    assert score_response(enabled, graded, "pay the ransom") == 0
    assert score_response(disabled, graded, "Isolate the host") == 0
    assert score_response(enabled, {"id": "3"}, "no points defined") == 0


def test_phase_lookup_by_reference() -> None:
    phases = [{"id": "triage"}, {"title": "No id"}]

    assert find_phase(phases, "triage") == {"id": "triage"}
    assert find_phase(phases, "2") == {"title": "No id"}
    assert find_phase(phases, "1") is None
    assert find_phase([], "1") == {}
    assert phase_count([]) == 1
    assert can_advance(1, phases) is True
    assert can_advance(2, phases) is False
