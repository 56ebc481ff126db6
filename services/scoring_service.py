"""
計分服務：回答得分與排行榜

純計算邏輯，不改變參與者或 Inject 的狀態。
排行榜直接使用參與者儲存的 total_score，只從回答紀錄推算每個 inject 的分數。
"""
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from models import Exercise, Participant, ParticipantStatus, Response


def score_response(exercise: Exercise, phase: Dict[str, Any], content: str) -> int:
    """
    計算單一回答的得分

    規則：
    - 演練關閉計分（scoring_enabled = False）→ 0
    - phase 沒有 correctAnswer → 直接得到 phase 的 points
    - 有 correctAnswer → 忽略大小寫與前後空白比對，相符才得 points，否則 0

    參數：
        exercise: 所屬演練（讀取 settings）
        phase: phase 定義
        content: 參與者的回答

    返回：
        得分（phase 沒有 points 時為 0）
    """
    settings = exercise.settings or {}
    if not settings.get("scoring_enabled", True):
        return 0

    points = int(phase.get("points", 0) or 0)
    expected: Optional[str] = phase.get("correctAnswer")
    if expected is None:
        return points

    if str(content).strip().lower() == str(expected).strip().lower():
        return points
    return 0


def compute_inject_scores(responses: Iterable[Response]) -> Dict[int, int]:
    """依 inject_number 加總 points_earned"""
    inject_scores: Dict[int, int] = {}
    for response in responses:
        inject_scores[response.inject_number] = (
            inject_scores.get(response.inject_number, 0) + response.points_earned
        )
    return inject_scores


def compute_leaderboard(db: Session, exercise: Exercise) -> Dict[str, Any]:
    """
    產生演練的排行榜

    流程：
    1. 依加入順序讀出 active 參與者
    2. 每位參與者整理 total_score 與各 inject 分數
    3. 依 total_score 由高到低排序（sorted 是穩定排序，同分維持加入順序）
    4. 計算平均分數（沒有參與者時為 0）

    參數：
        db: SQLAlchemy Session
        exercise: 演練

    返回：
        {exercise_title, total_participants, leaderboard, average_score}
    """
    # 1. 讀出 active 參與者
    participants = (
        db.query(Participant)
        .filter(
            Participant.exercise_id == exercise.id,
            Participant.status == ParticipantStatus.ACTIVE,
        )
        .order_by(Participant.id)
        .all()
    )

    # 2. 整理每位參與者
    entries: List[Dict[str, Any]] = [
        {
            "participant_id": p.participant_id,
            "name": p.name,
            "team": p.team,
            "total_score": p.total_score,
            "inject_scores": compute_inject_scores(p.responses),
        }
        for p in participants
    ]

    # 3. 排序
    leaderboard = sorted(entries, key=lambda entry: entry["total_score"], reverse=True)

    # 4. 平均分數
    total = len(participants)
    average = sum(p.total_score for p in participants) / total if total else 0

    return {
        "exercise_title": exercise.title,
        "total_participants": total,
        "leaderboard": leaderboard,
        "average_score": average,
    }
