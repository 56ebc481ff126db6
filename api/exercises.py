"""
Exercise API Endpoints（Facilitator）

重點：
1. 所有路由都需要 facilitator token，並檢查是否為演練建立者
2. 業務邏輯集中在 ExerciseManager / InjectLifecycle
3. 生命週期變更在 commit 之後以 BackgroundTasks 推播，推播失敗不影響 HTTP 回應
"""
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List

import logging

from database import get_db
from schemas import (
    ExerciseCreate,
    ExerciseUpdate,
    ExerciseResponse,
    ExerciseSummary,
    ExerciseEnvelope,
    InjectCreate,
    InjectUpdate,
    InjectResponse,
    InjectEnvelope,
    ReleaseInjectRequest,
    ToggleResponsesRequest,
    TogglePhaseLockRequest,
    ParticipantResponse,
    ScoreboardResponse
)
from core.exercise_manager import ExerciseManager
from core.inject_lifecycle import InjectLifecycle
from core.participant_manager import ParticipantManager
from core.broadcaster import (
    RealtimeBroadcaster,
    INJECT_RELEASED,
    RESPONSES_TOGGLED,
    PHASE_PROGRESSION_TOGGLED
)
from core.exceptions import (
    ExerciseNotFound,
    NotExerciseFacilitator,
    InvalidExerciseUpdate,
    InjectNotFound,
    InjectAlreadyReleased
)
from services.scoring_service import compute_leaderboard
from api.deps import AuthUser, facilitator_only, get_broadcaster

router = APIRouter(prefix="/api/exercises", tags=["exercises"])
logger = logging.getLogger(__name__)


def _inject_payload(inject) -> InjectResponse:
    return InjectResponse.model_validate(inject)


@router.post("", response_model=ExerciseEnvelope, status_code=201)
def create_exercise(
    exercise_data: ExerciseCreate,
    user: AuthUser = Depends(facilitator_only),
    db: Session = Depends(get_db)
):
    """
    建立演練

    返回：
        - success: True
        - exercise: 新演練（injects 為空，附 access code）
    """
    try:
        exercise = ExerciseManager.create_exercise(
            db,
            facilitator_id=user.id,
            title=exercise_data.title,
            description=exercise_data.description,
            max_participants=exercise_data.max_participants,
            settings=exercise_data.settings.model_dump() if exercise_data.settings else None
        )
        return ExerciseEnvelope(exercise=ExerciseResponse.model_validate(exercise))

    except Exception as e:
        logger.error(f"Failed to create exercise: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/my", response_model=List[ExerciseSummary])
def get_my_exercises(user: AuthUser = Depends(facilitator_only), db: Session = Depends(get_db)):
    """取得自己建立的演練（最新的在前）"""
    try:
        exercises = ExerciseManager.list_exercises(db, user.id)
        return [ExerciseSummary.model_validate(exercise) for exercise in exercises]

    except Exception as e:
        logger.error(f"Failed to list exercises: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{exercise_id}", response_model=ExerciseResponse)
def get_exercise(exercise_id: str, user: AuthUser = Depends(facilitator_only), db: Session = Depends(get_db)):
    """取得單一演練（含所有 injects）"""
    try:
        exercise = ExerciseManager.get_owned_exercise(db, exercise_id, user.id)
        return ExerciseResponse.model_validate(exercise)

    except ExerciseNotFound:
        raise HTTPException(status_code=404, detail="Exercise not found")
    except NotExerciseFacilitator:
        raise HTTPException(status_code=403, detail="Not authorized")
    except Exception as e:
        logger.error(f"Failed to get exercise: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.put("/{exercise_id}", response_model=ExerciseEnvelope)
def update_exercise(
    exercise_id: str,
    exercise_data: ExerciseUpdate,
    user: AuthUser = Depends(facilitator_only),
    db: Session = Depends(get_db)
):
    """
    更新演練

    只更新 body 內有提供的欄位（title / description / maxParticipants / settings / status）
    """
    try:
        exercise = ExerciseManager.get_owned_exercise(db, exercise_id, user.id)
        patch = exercise_data.model_dump(exclude_unset=True)
        exercise = ExerciseManager.update_exercise(db, exercise, patch)
        return ExerciseEnvelope(exercise=ExerciseResponse.model_validate(exercise))

    except ExerciseNotFound:
        raise HTTPException(status_code=404, detail="Exercise not found")
    except NotExerciseFacilitator:
        raise HTTPException(status_code=403, detail="Not authorized")
    except InvalidExerciseUpdate as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to update exercise: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{exercise_id}/injects", response_model=InjectEnvelope, status_code=201)
def add_inject(
    exercise_id: str,
    inject_data: InjectCreate,
    user: AuthUser = Depends(facilitator_only),
    db: Session = Depends(get_db)
):
    """
    新增 Inject

    injectNumber = 目前 inject 數量 + 1，建立時尚未發布
    """
    try:
        ExerciseManager.get_owned_exercise(db, exercise_id, user.id)
        inject = InjectLifecycle.add_inject(
            db,
            exercise_id,
            title=inject_data.title,
            narrative=inject_data.narrative,
            artifacts=inject_data.artifacts,
            phases=inject_data.phases
        )
        return InjectEnvelope(inject=_inject_payload(inject))

    except ExerciseNotFound:
        raise HTTPException(status_code=404, detail="Exercise not found")
    except NotExerciseFacilitator:
        raise HTTPException(status_code=403, detail="Not authorized")
    except Exception as e:
        logger.error(f"Failed to add inject: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.put("/{exercise_id}/injects/{inject_number}", response_model=InjectEnvelope)
def update_inject(
    exercise_id: str,
    inject_number: int,
    inject_data: InjectUpdate,
    user: AuthUser = Depends(facilitator_only),
    db: Session = Depends(get_db)
):
    """
    更新 Inject（淺層覆寫）

    注意：這是一般更新路徑，可以直接改生命週期欄位，不會觸發推播
    """
    try:
        ExerciseManager.get_owned_exercise(db, exercise_id, user.id)
        inject = InjectLifecycle.update_inject(
            db, exercise_id, inject_number, inject_data.model_dump(exclude_unset=True)
        )
        return InjectEnvelope(inject=_inject_payload(inject))

    except ExerciseNotFound:
        raise HTTPException(status_code=404, detail="Exercise not found")
    except NotExerciseFacilitator:
        raise HTTPException(status_code=403, detail="Not authorized")
    except InjectNotFound:
        raise HTTPException(status_code=404, detail="Inject not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to update inject: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{exercise_id}/release-inject", response_model=InjectEnvelope)
def release_inject(
    exercise_id: str,
    release_data: ReleaseInjectRequest,
    background_tasks: BackgroundTasks,
    user: AuthUser = Depends(facilitator_only),
    db: Session = Depends(get_db),
    broadcaster: RealtimeBroadcaster = Depends(get_broadcaster)
):
    """
    發布 Inject 給參與者

    效果：
    - isActive=True、responsesOpen=True，releaseTime 只在第一次發布時寫入
    - 所有 active 參與者移到此 inject 的 phase 1
    - 推播 injectReleased {injectNumber, inject}

    重複發布（已發布且回答開放）返回 400
    """
    inject_number = release_data.inject_number
    try:
        ExerciseManager.get_owned_exercise(db, exercise_id, user.id)
        inject = InjectLifecycle.release_inject(db, exercise_id, inject_number)
        payload = _inject_payload(inject)

        background_tasks.add_task(
            broadcaster.broadcast,
            exercise_id,
            INJECT_RELEASED,
            {"injectNumber": inject_number, "inject": payload.model_dump(mode="json", by_alias=True)}
        )

        return InjectEnvelope(
            message=f"Inject {inject_number} released successfully",
            inject=payload
        )

    except ExerciseNotFound:
        raise HTTPException(status_code=404, detail="Exercise not found")
    except NotExerciseFacilitator:
        raise HTTPException(status_code=403, detail="Not authorized")
    except InjectNotFound:
        raise HTTPException(status_code=404, detail="Inject not found")
    except InjectAlreadyReleased:
        raise HTTPException(status_code=400, detail="Inject already released or no changes made")
    except Exception as e:
        logger.error(f"Failed to release inject: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{exercise_id}/toggle-responses", response_model=InjectEnvelope)
def toggle_responses(
    exercise_id: str,
    toggle_data: ToggleResponsesRequest,
    background_tasks: BackgroundTasks,
    user: AuthUser = Depends(facilitator_only),
    db: Session = Depends(get_db),
    broadcaster: RealtimeBroadcaster = Depends(get_broadcaster)
):
    """
    開 / 關回答

    未發布的 inject 也可以切換。推播 responsesToggled {injectNumber, responsesOpen}
    """
    inject_number = toggle_data.inject_number
    responses_open = toggle_data.responses_open
    try:
        ExerciseManager.get_owned_exercise(db, exercise_id, user.id)
        inject = InjectLifecycle.set_responses_open(db, exercise_id, inject_number, responses_open)

        background_tasks.add_task(
            broadcaster.broadcast,
            exercise_id,
            RESPONSES_TOGGLED,
            {"injectNumber": inject_number, "responsesOpen": responses_open}
        )

        return InjectEnvelope(
            message=f"Responses {'opened' if responses_open else 'closed'} for inject {inject_number}",
            inject=_inject_payload(inject)
        )

    except ExerciseNotFound:
        raise HTTPException(status_code=404, detail="Exercise not found")
    except NotExerciseFacilitator:
        raise HTTPException(status_code=403, detail="Not authorized")
    except InjectNotFound:
        raise HTTPException(status_code=404, detail="Inject not found")
    except Exception as e:
        logger.error(f"Failed to toggle responses: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{exercise_id}/toggle-phase-lock", response_model=InjectEnvelope)
def toggle_phase_progression(
    exercise_id: str,
    toggle_data: TogglePhaseLockRequest,
    background_tasks: BackgroundTasks,
    user: AuthUser = Depends(facilitator_only),
    db: Session = Depends(get_db),
    broadcaster: RealtimeBroadcaster = Depends(get_broadcaster)
):
    """
    鎖定 / 解鎖 phase 推進

    推播 phaseProgressionToggled {injectNumber, phaseProgressionLocked}
    """
    inject_number = toggle_data.inject_number
    locked = toggle_data.phase_progression_locked
    try:
        ExerciseManager.get_owned_exercise(db, exercise_id, user.id)
        inject = InjectLifecycle.set_phase_progression_locked(db, exercise_id, inject_number, locked)

        background_tasks.add_task(
            broadcaster.broadcast,
            exercise_id,
            PHASE_PROGRESSION_TOGGLED,
            {"injectNumber": inject_number, "phaseProgressionLocked": locked}
        )

        return InjectEnvelope(
            message=f"Phase progression {'locked' if locked else 'unlocked'} for inject {inject_number}",
            inject=_inject_payload(inject)
        )

    except ExerciseNotFound:
        raise HTTPException(status_code=404, detail="Exercise not found")
    except NotExerciseFacilitator:
        raise HTTPException(status_code=403, detail="Not authorized")
    except InjectNotFound:
        raise HTTPException(status_code=404, detail="Inject not found")
    except Exception as e:
        logger.error(f"Failed to toggle phase progression: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{exercise_id}/participants", response_model=List[ParticipantResponse])
def get_participants(exercise_id: str, user: AuthUser = Depends(facilitator_only), db: Session = Depends(get_db)):
    """演練的所有參與者（最晚加入的在前）"""
    try:
        exercise = ExerciseManager.get_owned_exercise(db, exercise_id, user.id)
        participants = ParticipantManager.list_participants(db, exercise.id)
        return [ParticipantResponse.model_validate(p) for p in participants]

    except ExerciseNotFound:
        raise HTTPException(status_code=404, detail="Exercise not found")
    except NotExerciseFacilitator:
        raise HTTPException(status_code=403, detail="Not authorized")
    except Exception as e:
        logger.error(f"Failed to list participants: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{exercise_id}/scores", response_model=ScoreboardResponse)
def get_scores(exercise_id: str, user: AuthUser = Depends(facilitator_only), db: Session = Depends(get_db)):
    """
    排行榜

    返回：
        - exerciseTitle
        - totalParticipants: active 參與者數量
        - leaderboard: 依 totalScore 由高到低
        - averageScore: 沒有參與者時為 0
    """
    try:
        exercise = ExerciseManager.get_owned_exercise(db, exercise_id, user.id)
        return ScoreboardResponse.model_validate(compute_leaderboard(db, exercise))

    except ExerciseNotFound:
        raise HTTPException(status_code=404, detail="Exercise not found")
    except NotExerciseFacilitator:
        raise HTTPException(status_code=403, detail="Not authorized")
    except Exception as e:
        logger.error(f"Failed to compute scores: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
