"""
Inject Lifecycle：管理 Inject 的結構修改與生命週期狀態

生命週期欄位：(is_active, responses_open, phase_progression_locked)
初始狀態：(False, False, False)，沒有終止狀態。

轉換：
- release_inject：發布 inject 並開放回答，所有 active 參與者移到此 inject 的第 1 個 phase
- set_responses_open：開 / 關回答（未發布的 inject 也可以切換）
- set_phase_progression_locked：鎖定 / 解鎖 phase 推進

設計重點：
- 生命週期轉換一律用「只碰指定欄位」的條件式 UPDATE（exercise_id AND inject_number），
  不做整份文件改寫，同一演練不同 inject 的並發操作不會互相覆蓋
- 同一欄位的並發切換是 last-writer-wins，不加鎖
- release 的參與者移動是獨立的第二個 transaction，失敗只記 log，不回滾 inject 狀態
- 廣播由 API 層在 commit 之後排程，這裡不碰 WebSocket

add_inject / update_inject 是結構修改，不屬於狀態機。
"""
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Optional, Tuple
import logging

from models import Exercise, Inject, Participant, ParticipantStatus, utcnow
from core.locks import with_exercise_lock
from core.exceptions import (
    ExerciseNotFound,
    InjectNotFound,
    InjectAlreadyReleased
)
from database import transactional

logger = logging.getLogger(__name__)

# update_inject 可修改的欄位（inject_number / order / release_time 不可改）
PATCHABLE_FIELDS = (
    "title",
    "narrative",
    "artifacts",
    "phases",
    "is_active",
    "responses_open",
    "phase_progression_locked",
)


class InjectLifecycle:
    """Inject 結構修改與生命週期狀態機"""

    # ============ 結構修改 ============

    @staticmethod
    @transactional
    def add_inject(
        db: Session,
        exercise_id: str,
        title: str,
        narrative: str = "",
        artifacts: Optional[List[Any]] = None,
        phases: Optional[List[Dict[str, Any]]] = None
    ) -> Inject:
        """
        新增 Inject（append-only）

        流程：
        1. 鎖定 Exercise
        2. inject_number = 目前數量 + 1，order 相同
        3. 生命週期欄位全部為 False

        異常：
            ExerciseNotFound: Exercise 不存在
        """
        # 1. 鎖定 Exercise
        exercise = with_exercise_lock(exercise_id, db).first()
        if not exercise:
            raise ExerciseNotFound(exercise_id)

        # 2. 決定 inject_number
        inject_count = db.query(Inject).filter(Inject.exercise_id == exercise_id).count()
        inject_number = inject_count + 1

        inject = Inject(
            exercise_id=exercise_id,
            inject_number=inject_number,
            title=title,
            narrative=narrative or "",
            artifacts=list(artifacts or []),
            phases=list(phases or []),
            order=inject_number,
            is_active=False,
            responses_open=False,
            phase_progression_locked=False
        )
        db.add(inject)
        exercise.updated_at = utcnow()
        db.flush()

        logger.info(f"Added inject {inject_number} ({title}) to exercise {exercise_id}")
        return inject

    @staticmethod
    @transactional
    def update_inject(db: Session, exercise_id: str, inject_number: int, patch: Dict[str, Any]) -> Inject:
        """
        更新 Inject（淺層覆寫）

        patch 內的欄位直接覆蓋，未提供的欄位不變。
        生命週期欄位也可以在這裡直接改，這是與 release 分開的一般更新路徑。

        異常：
            InjectNotFound: Inject 不存在
            ValueError: patch 含不可修改的欄位
        """
        inject = InjectLifecycle.get_inject(db, exercise_id, inject_number)

        unknown = set(patch) - set(PATCHABLE_FIELDS)
        if unknown:
            raise ValueError(f"Fields cannot be patched: {sorted(unknown)}")

        for field, value in patch.items():
            setattr(inject, field, value)

        db.query(Exercise).filter(Exercise.id == exercise_id).update(
            {Exercise.updated_at: utcnow()}, synchronize_session=False
        )
        db.flush()

        logger.info(f"Updated inject {inject_number} in exercise {exercise_id}: {sorted(patch.keys())}")
        return inject

    # ============ 生命週期轉換 ============

    @staticmethod
    def release_inject(db: Session, exercise_id: str, inject_number: int) -> Inject:
        """
        發布 Inject

        流程：
        1. 條件式更新 inject（第一個 transaction）
        2. 所有 active 參與者移到 (inject_number, phase 1)（第二個 transaction）
        3. 重新讀取 inject 返回

        參與者移動失敗只記錄 log，inject 的發布狀態不會回滾。

        異常：
            ExerciseNotFound: Exercise 不存在
            InjectNotFound: Inject 不存在
            InjectAlreadyReleased: 已發布且回答仍開放，沒有欄位需要變更
        """
        # 1. 發布（會自動 commit）
        reopened = InjectLifecycle._activate(db, exercise_id, inject_number)
        logger.info(
            f"Inject {inject_number} {'re-opened' if reopened else 'released'} "
            f"in exercise {exercise_id}"
        )

        # 2. 移動參與者
        try:
            moved = InjectLifecycle._reposition_participants(db, exercise_id, inject_number)
            logger.info(f"Moved {moved} participants of exercise {exercise_id} to inject {inject_number}")
        except SQLAlchemyError as e:
            logger.error(
                f"Failed to move participants of exercise {exercise_id} to inject {inject_number}; "
                f"inject stays released: {e}",
                exc_info=True
            )

        # 3. 回傳最新狀態
        return InjectLifecycle.get_inject(db, exercise_id, inject_number)

    @staticmethod
    @transactional
    def _activate(db: Session, exercise_id: str, inject_number: int) -> bool:
        """
        release 的 inject 更新部分

        返回：
            False 表示第一次發布，True 表示已發布但回答關閉、這次重新開放

        release_time 只在第一次發布時寫入，之後不會被覆蓋（包含透過 update_inject
        把 is_active 改回 False 再發布的情況）。
        """
        now = utcnow()

        # 第一次發布：is_active=False 才會命中
        matched = db.query(Inject).filter(
            Inject.exercise_id == exercise_id,
            Inject.inject_number == inject_number,
            Inject.is_active == False
        ).update(
            {
                Inject.is_active: True,
                Inject.release_time: func.coalesce(Inject.release_time, now),
                Inject.responses_open: True
            },
            synchronize_session=False
        )
        reopened = False

        if matched == 0:
            # 已發布但回答關閉，或經由 update_inject 直接設為 active 而沒有 release_time
            matched = db.query(Inject).filter(
                Inject.exercise_id == exercise_id,
                Inject.inject_number == inject_number,
                Inject.is_active == True,
                or_(Inject.responses_open == False, Inject.release_time.is_(None))
            ).update(
                {
                    Inject.responses_open: True,
                    Inject.release_time: func.coalesce(Inject.release_time, now)
                },
                synchronize_session=False
            )
            reopened = True

        if matched == 0:
            InjectLifecycle._raise_for_missing(db, exercise_id, inject_number)
            raise InjectAlreadyReleased(exercise_id, inject_number)

        InjectLifecycle._touch_exercise(db, exercise_id, now)
        return reopened

    @staticmethod
    @transactional
    def _reposition_participants(db: Session, exercise_id: str, inject_number: int) -> int:
        """所有 active 參與者移到新 inject 的第 1 個 phase，返回更新筆數"""
        return db.query(Participant).filter(
            Participant.exercise_id == exercise_id,
            Participant.status == ParticipantStatus.ACTIVE
        ).update(
            {
                Participant.current_inject: inject_number,
                Participant.current_phase: 1,
                Participant.updated_at: utcnow()
            },
            synchronize_session=False
        )

    @staticmethod
    def set_responses_open(db: Session, exercise_id: str, inject_number: int, responses_open: bool) -> Inject:
        """
        開 / 關 Inject 的回答

        只修改 responses_open，其他欄位不變。
        不要求 inject 已發布。

        異常：
            ExerciseNotFound / InjectNotFound
        """
        InjectLifecycle._set_flag(db, exercise_id, inject_number, Inject.responses_open, responses_open)
        logger.info(
            f"Responses {'opened' if responses_open else 'closed'} for inject {inject_number} "
            f"in exercise {exercise_id}"
        )
        return InjectLifecycle.get_inject(db, exercise_id, inject_number)

    @staticmethod
    def set_phase_progression_locked(db: Session, exercise_id: str, inject_number: int, locked: bool) -> Inject:
        """
        鎖定 / 解鎖 Inject 的 phase 推進

        只修改 phase_progression_locked，其他欄位不變。

        異常：
            ExerciseNotFound / InjectNotFound
        """
        InjectLifecycle._set_flag(db, exercise_id, inject_number, Inject.phase_progression_locked, locked)
        logger.info(
            f"Phase progression {'locked' if locked else 'unlocked'} for inject {inject_number} "
            f"in exercise {exercise_id}"
        )
        return InjectLifecycle.get_inject(db, exercise_id, inject_number)

    @staticmethod
    @transactional
    def _set_flag(db: Session, exercise_id: str, inject_number: int, column, value: bool) -> None:
        matched = db.query(Inject).filter(
            Inject.exercise_id == exercise_id,
            Inject.inject_number == inject_number
        ).update({column: value}, synchronize_session=False)

        if matched == 0:
            InjectLifecycle._raise_for_missing(db, exercise_id, inject_number)

        InjectLifecycle._touch_exercise(db, exercise_id, utcnow())

    # ============ 查詢 ============

    @staticmethod
    def get_inject(db: Session, exercise_id: str, inject_number: int) -> Inject:
        """
        取得 Inject

        異常：
            InjectNotFound: Inject 不存在
        """
        inject = db.query(Inject).filter(
            Inject.exercise_id == exercise_id,
            Inject.inject_number == inject_number
        ).first()
        if not inject:
            raise InjectNotFound(exercise_id, inject_number)
        return inject

    @staticmethod
    def get_latest_released_number(db: Session, exercise_id: str) -> int:
        """最後發布的 inject_number（依 release_time），還沒有任何發布時返回 0"""
        row: Optional[Tuple[int]] = db.query(Inject.inject_number).filter(
            Inject.exercise_id == exercise_id,
            Inject.is_active == True
        ).order_by(Inject.release_time.desc(), Inject.inject_number.desc()).first()
        return row[0] if row else 0

    @staticmethod
    def _raise_for_missing(db: Session, exercise_id: str, inject_number: int) -> None:
        """條件式更新沒命中時，分辨是 Exercise 還是 Inject 不存在"""
        if not db.query(Exercise.id).filter(Exercise.id == exercise_id).first():
            raise ExerciseNotFound(exercise_id)
        if not db.query(Inject.id).filter(
            Inject.exercise_id == exercise_id,
            Inject.inject_number == inject_number
        ).first():
            raise InjectNotFound(exercise_id, inject_number)

    @staticmethod
    def _touch_exercise(db: Session, exercise_id: str, now) -> None:
        db.query(Exercise).filter(Exercise.id == exercise_id).update(
            {Exercise.updated_at: now}, synchronize_session=False
        )
