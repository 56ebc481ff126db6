"""
Exercise Manager：管理 Exercise 的建立、查詢與更新

職責：
1. 建立 Exercise（含唯一 access code）
2. 查詢 Facilitator 自己的 Exercise
3. 擁有權檢查（只有建立者可以操作）
4. 一般欄位更新

Inject 的結構修改與生命週期在 core.inject_lifecycle，不在這裡。
"""
from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from models import Exercise, ExerciseStatus, Participant, ParticipantStatus, default_exercise_settings
from core.exceptions import (
    ExerciseNotFound,
    NotExerciseFacilitator,
    InvalidExerciseUpdate
)
from services.naming_service import generate_access_code, normalize_access_code
from database import transactional

logger = logging.getLogger(__name__)

DEFAULT_MAX_PARTICIPANTS = 50


class ExerciseManager:
    """Exercise 管理器"""

    @staticmethod
    @transactional
    def create_exercise(
        db: Session,
        facilitator_id: str,
        title: str,
        description: str = "",
        max_participants: Optional[int] = None,
        settings: Optional[dict] = None
    ) -> Exercise:
        """
        建立新演練

        流程：
        1. 生成唯一的 access code
        2. 建立 Exercise（injects 一開始是空的）

        參數：
            db: SQLAlchemy Session
            facilitator_id: 建立者 ID（來自認證層的 user.id）
            title / description: 演練標題與描述
            max_participants: 參與者上限，未提供時為 50
            settings: scoring_enabled / auto_release / show_scores

        返回：
            新建立的 Exercise
        """
        # 1. 生成唯一的 access code
        code = generate_access_code()
        while db.query(Exercise).filter(Exercise.access_code == code).first():
            logger.warning(f"Access code collision detected, regenerating: {code}")
            code = generate_access_code()

        # 2. 建立 Exercise
        exercise = Exercise(
            title=title,
            description=description or "",
            facilitator_id=facilitator_id,
            access_code=code,
            max_participants=max_participants or DEFAULT_MAX_PARTICIPANTS,
            settings=settings if settings is not None else default_exercise_settings(),
            status=ExerciseStatus.DRAFT
        )
        db.add(exercise)
        db.flush()

        logger.info(f"Created exercise {exercise.id} with access code {code} for facilitator {facilitator_id}")
        return exercise

    @staticmethod
    def list_exercises(db: Session, facilitator_id: str) -> List[Exercise]:
        """Facilitator 自己的演練，最新的在前"""
        return db.query(Exercise).filter(
            Exercise.facilitator_id == facilitator_id
        ).order_by(Exercise.created_at.desc()).all()

    @staticmethod
    def get_exercise_by_id(db: Session, exercise_id: str) -> Exercise:
        """
        透過 ID 取得 Exercise

        異常：
            ExerciseNotFound: Exercise 不存在
        """
        exercise = db.query(Exercise).filter(Exercise.id == exercise_id).first()
        if not exercise:
            raise ExerciseNotFound(exercise_id)
        return exercise

    @staticmethod
    def get_owned_exercise(db: Session, exercise_id: str, facilitator_id: str) -> Exercise:
        """
        取得 Exercise 並檢查擁有權

        異常：
            ExerciseNotFound: Exercise 不存在
            NotExerciseFacilitator: 呼叫者不是建立者
        """
        exercise = ExerciseManager.get_exercise_by_id(db, exercise_id)
        if exercise.facilitator_id != str(facilitator_id):
            raise NotExerciseFacilitator(exercise_id, facilitator_id)
        return exercise

    @staticmethod
    def get_exercise_by_access_code(db: Session, code: str) -> Exercise:
        """
        透過 access code 取得 Exercise（不分大小寫）

        異常：
            ExerciseNotFound: Exercise 不存在
        """
        normalized = normalize_access_code(code)
        exercise = db.query(Exercise).filter(Exercise.access_code == normalized).first()
        if not exercise:
            raise ExerciseNotFound(f"with access code {normalized}")
        return exercise

    @staticmethod
    @transactional
    def update_exercise(db: Session, exercise: Exercise, patch: dict) -> Exercise:
        """
        更新演練的一般欄位（淺層覆寫，未提供的欄位不變）

        可更新欄位：title, description, max_participants, settings, status

        異常：
            InvalidExerciseUpdate: max_participants 低於目前的參與者數量
        """
        if patch.get("max_participants") is not None:
            current = ExerciseManager.get_participant_count(db, exercise.id)
            if patch["max_participants"] < current:
                raise InvalidExerciseUpdate(
                    f"max_participants ({patch['max_participants']}) is below "
                    f"the current participant count ({current})"
                )

        # settings 只覆寫有提供的旗標
        if patch.get("settings") is not None:
            patch = {**patch, "settings": {**(exercise.settings or {}), **patch["settings"]}}

        for field, value in patch.items():
            setattr(exercise, field, value)

        db.flush()
        logger.info(f"Updated exercise {exercise.id}: {sorted(patch.keys())}")
        return exercise

    @staticmethod
    def get_participant_count(db: Session, exercise_id: str) -> int:
        """取得演練內 active 參與者數量"""
        return db.query(Participant).filter(
            Participant.exercise_id == exercise_id,
            Participant.status == ParticipantStatus.ACTIVE
        ).count()
