"""
並發控制工具

結構性修改（新增 Inject、參與者推進 phase）使用 SELECT ... FOR UPDATE 的行級鎖。

注意：release / toggle 刻意不加鎖，改用只碰指定欄位的條件式更新。
同一個欄位的並發切換是 last-writer-wins。
"""
from sqlalchemy.orm import Session, Query

from models import Exercise, Participant


def with_exercise_lock(exercise_id: str, db: Session) -> Query:
    """
    鎖定一個 Exercise（行級鎖）

    使用場景：
    - 新增 Inject 時（inject_number = 目前數量 + 1，必須避免兩個請求拿到同一個號碼）

    範例：
        exercise = with_exercise_lock(exercise_id, db).first()
        if not exercise:
            raise ExerciseNotFound(exercise_id)

    注意：
        - SQLite 會忽略 FOR UPDATE，由 (exercise_id, inject_number) 唯一鍵兜底
        - 必須在 transaction 內使用
    """
    return db.query(Exercise).filter(
        Exercise.id == exercise_id
    ).with_for_update(nowait=False)


def with_participant_lock(participant_id: str, db: Session) -> Query:
    """
    鎖定一個 Participant（行級鎖）

    使用場景：
    - 提交回答、推進 phase（讀取目前位置後再寫回）
    """
    return db.query(Participant).filter(
        Participant.participant_id == participant_id
    ).with_for_update(nowait=False)
