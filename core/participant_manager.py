"""
Participant Manager：參與者加入、回答、推進 phase

職責：
1. 以 access code 加入演練
2. 提交回答（計分交給 scoring_service）
3. 推進 phase（受 facilitator 的 phase 鎖控制）

參與者的「目前位置」只有兩種改法：
- release_inject 批次移到新 inject 的 phase 1（core.inject_lifecycle）
- advance_phase 一次前進一個 phase（這裡）
"""
from sqlalchemy.orm import Session
import logging

from models import (
    Exercise,
    ExerciseStatus,
    Participant,
    ParticipantStatus,
    Response,
    utcnow
)
from core.exercise_manager import ExerciseManager
from core.inject_lifecycle import InjectLifecycle
from core.locks import with_participant_lock
from core.exceptions import (
    ParticipantNotFound,
    ExerciseNotAcceptingParticipants,
    ExerciseFull,
    ResponsesClosed,
    ResponseAlreadySubmitted,
    InvalidResponse,
    PhaseProgressionLocked,
    InvalidPhaseTransition
)
from services.naming_service import generate_participant_id
from services.phase_service import find_phase, can_advance
from services.scoring_service import score_response
from database import transactional

logger = logging.getLogger(__name__)


class ParticipantManager:
    """Participant 管理器"""

    @staticmethod
    @transactional
    def join_exercise(db: Session, access_code: str, name: str, team: str = None) -> Participant:
        """
        以 access code 加入演練

        前置條件：
        1. Exercise 必須存在
        2. Exercise 不能是 COMPLETED
        3. active 參與者數量 < max_participants

        新參與者會放在最後發布的 inject（沒有則為 0）的 phase 1。

        異常：
            ExerciseNotFound: access code 不存在
            ExerciseNotAcceptingParticipants: 演練已結束
            ExerciseFull: 參與者已滿
        """
        # 1. 找到演練
        exercise = ExerciseManager.get_exercise_by_access_code(db, access_code)

        # 2. 檢查狀態
        if exercise.status == ExerciseStatus.COMPLETED:
            raise ExerciseNotAcceptingParticipants(
                f"Exercise {exercise.id} is not accepting participants (status: {exercise.status.value})"
            )

        # 3. 檢查人數
        count = ExerciseManager.get_participant_count(db, exercise.id)
        if count >= exercise.max_participants:
            raise ExerciseFull(f"Exercise {exercise.id} is full ({exercise.max_participants} participants)")

        # 4. 生成唯一的 participant_id
        pid = generate_participant_id()
        while db.query(Participant).filter(Participant.participant_id == pid).first():
            logger.warning(f"Participant id collision detected, regenerating: {pid}")
            pid = generate_participant_id()

        participant = Participant(
            participant_id=pid,
            exercise_id=exercise.id,
            name=name,
            team=team,
            status=ParticipantStatus.ACTIVE,
            current_inject=InjectLifecycle.get_latest_released_number(db, exercise.id),
            current_phase=1,
            total_score=0
        )
        db.add(participant)
        db.flush()

        logger.info(f"Participant {pid} ({name}) joined exercise {exercise.id}")
        return participant

    @staticmethod
    def get_participant(db: Session, participant_id: str) -> Participant:
        """
        取得參與者

        異常：
            ParticipantNotFound: 參與者不存在
        """
        participant = db.query(Participant).filter(
            Participant.participant_id == participant_id
        ).first()
        if not participant:
            raise ParticipantNotFound(participant_id)
        return participant

    @staticmethod
    def list_participants(db: Session, exercise_id: str):
        """演練的所有參與者，最晚加入的在前"""
        return db.query(Participant).filter(
            Participant.exercise_id == exercise_id
        ).order_by(Participant.joined_at.desc(), Participant.id.desc()).all()

    @staticmethod
    @transactional
    def submit_response(
        db: Session,
        participant_id: str,
        inject_number: int,
        phase_id: str,
        content: str
    ) -> Response:
        """
        提交回答

        前置條件：
        1. 參與者存在且為 active
        2. Inject 已發布且 responses_open
        3. phase_id 對應到 inject 的某個 phase
        4. 這個 phase 還沒回答過

        流程：
        1. 驗證前置條件
        2. 計分
        3. 建立 Response，累加 total_score

        異常：
            ParticipantNotFound / InjectNotFound
            ResponsesClosed: inject 未發布或回答已關閉
            InvalidResponse: phase 不存在
            ResponseAlreadySubmitted: 已回答過
        """
        # 1. 取得並鎖定參與者
        participant = with_participant_lock(participant_id, db).first()
        if not participant or participant.status != ParticipantStatus.ACTIVE:
            raise ParticipantNotFound(participant_id)

        inject = InjectLifecycle.get_inject(db, participant.exercise_id, inject_number)
        if not inject.is_active or not inject.responses_open:
            raise ResponsesClosed(f"Responses are closed for inject {inject_number}")

        phase = find_phase(inject.phases or [], phase_id)
        if phase is None:
            raise InvalidResponse(f"Inject {inject_number} has no phase {phase_id}")

        existing = db.query(Response).filter(
            Response.participant_pk == participant.id,
            Response.inject_number == inject_number,
            Response.phase_id == phase_id
        ).first()
        if existing:
            raise ResponseAlreadySubmitted(
                f"Participant {participant_id} already answered phase {phase_id} of inject {inject_number}"
            )

        # 2. 計分
        exercise = db.query(Exercise).filter(Exercise.id == participant.exercise_id).first()
        points = score_response(exercise, phase, content)

        # 3. 建立回答
        response = Response(
            participant_pk=participant.id,
            inject_number=inject_number,
            phase_id=phase_id,
            content=content,
            points_earned=points
        )
        db.add(response)
        participant.total_score = (participant.total_score or 0) + points
        participant.updated_at = utcnow()
        db.flush()

        logger.info(
            f"Participant {participant_id} answered inject {inject_number} phase {phase_id}: "
            f"+{points} (total {participant.total_score})"
        )
        return response

    @staticmethod
    @transactional
    def advance_phase(db: Session, participant_id: str) -> Participant:
        """
        推進到目前 inject 的下一個 phase

        異常：
            ParticipantNotFound
            InvalidPhaseTransition: 還沒有任何 inject，或已在最後一個 phase
            PhaseProgressionLocked: facilitator 鎖定了 phase 推進
        """
        participant = with_participant_lock(participant_id, db).first()
        if not participant or participant.status != ParticipantStatus.ACTIVE:
            raise ParticipantNotFound(participant_id)

        if participant.current_inject < 1:
            raise InvalidPhaseTransition("No inject has been released yet")

        inject = InjectLifecycle.get_inject(db, participant.exercise_id, participant.current_inject)
        if inject.phase_progression_locked:
            raise PhaseProgressionLocked(
                f"Phase progression is locked for inject {inject.inject_number}"
            )

        if not can_advance(participant.current_phase, inject.phases or []):
            raise InvalidPhaseTransition(
                f"Participant {participant_id} is already on the last phase of inject {inject.inject_number}"
            )

        participant.current_phase += 1
        participant.updated_at = utcnow()
        db.flush()

        logger.info(
            f"Participant {participant_id} advanced to phase {participant.current_phase} "
            f"of inject {inject.inject_number}"
        )
        return participant
