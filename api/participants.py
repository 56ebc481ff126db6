"""
Participant API Endpoints

職責：
1. 以 access code 加入演練
2. 查詢參與者狀態與目前的 inject
3. 提交回答
4. 推進 phase

參與者端不需要 token，以 participantId 識別。
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
import logging

from database import get_db
from models import Participant
from schemas import (
    ParticipantJoin,
    ParticipantResponse,
    InjectResponse,
    ResponseSubmit,
    ResponseSubmitResult,
    ResponseRecord
)
from core.participant_manager import ParticipantManager
from core.inject_lifecycle import InjectLifecycle
from core.exceptions import (
    ExerciseNotFound,
    ExerciseNotAcceptingParticipants,
    ExerciseFull,
    ParticipantNotFound,
    InjectNotFound,
    ResponsesClosed,
    ResponseAlreadySubmitted,
    InvalidResponse,
    PhaseProgressionLocked,
    InvalidPhaseTransition
)

router = APIRouter(prefix="/api/participants", tags=["participants"])
logger = logging.getLogger(__name__)


def _scores_visible(participant: Participant) -> bool:
    settings = participant.exercise.settings or {}
    return settings.get("show_scores", True)


def _participant_view(participant: Participant) -> ParticipantResponse:
    """show_scores 關閉時隱藏 totalScore"""
    view = ParticipantResponse.model_validate(participant)
    if not _scores_visible(participant):
        view.total_score = None
    return view


@router.post("/join", response_model=ParticipantResponse, status_code=201)
def join_exercise(join_data: ParticipantJoin, db: Session = Depends(get_db)):
    """
    加入演練（參與者 endpoint）

    前置條件：
    - access code 必須存在
    - 演練尚未結束，且人數未滿
    """
    try:
        participant = ParticipantManager.join_exercise(
            db, join_data.access_code, join_data.name, join_data.team
        )
        return _participant_view(participant)

    except ExerciseNotFound:
        raise HTTPException(status_code=404, detail="Exercise not found")
    except (ExerciseNotAcceptingParticipants, ExerciseFull) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to join exercise: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{participant_id}", response_model=ParticipantResponse)
def get_participant(participant_id: str, db: Session = Depends(get_db)):
    """取得參與者狀態（目前 inject / phase、回答紀錄）"""
    try:
        participant = ParticipantManager.get_participant(db, participant_id)
        return _participant_view(participant)

    except ParticipantNotFound:
        raise HTTPException(status_code=404, detail="Participant not found")
    except Exception as e:
        logger.error(f"Failed to get participant: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{participant_id}/inject", response_model=InjectResponse)
def get_current_inject(participant_id: str, db: Session = Depends(get_db)):
    """
    取得參與者目前所在的 inject

    還沒發布的 inject 不會回傳給參與者（404）
    """
    try:
        participant = ParticipantManager.get_participant(db, participant_id)
        if participant.current_inject < 1:
            raise HTTPException(status_code=404, detail="No inject released yet")

        inject = InjectLifecycle.get_inject(db, participant.exercise_id, participant.current_inject)
        if not inject.is_active:
            raise HTTPException(status_code=404, detail="No inject released yet")

        return InjectResponse.model_validate(inject)

    except HTTPException:
        raise
    except (ParticipantNotFound, InjectNotFound):
        raise HTTPException(status_code=404, detail="Participant or inject not found")
    except Exception as e:
        logger.error(f"Failed to get current inject: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{participant_id}/responses", response_model=ResponseSubmitResult, status_code=201)
def submit_response(participant_id: str, response_data: ResponseSubmit, db: Session = Depends(get_db)):
    """
    提交回答

    前置條件：
    - inject 已發布且 responsesOpen
    - phaseId 存在於 inject
    - 每個 phase 只能回答一次
    """
    try:
        response = ParticipantManager.submit_response(
            db,
            participant_id,
            response_data.inject_number,
            response_data.phase_id,
            response_data.content
        )
        participant = ParticipantManager.get_participant(db, participant_id)

        return ResponseSubmitResult(
            response=ResponseRecord.model_validate(response),
            total_score=participant.total_score if _scores_visible(participant) else None
        )

    except (ParticipantNotFound, InjectNotFound) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (ResponsesClosed, ResponseAlreadySubmitted, InvalidResponse) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to submit response: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{participant_id}/advance-phase", response_model=ParticipantResponse)
def advance_phase(participant_id: str, db: Session = Depends(get_db)):
    """
    推進到下一個 phase

    facilitator 鎖定 phase 推進時返回 423
    """
    try:
        participant = ParticipantManager.advance_phase(db, participant_id)
        return _participant_view(participant)

    except (ParticipantNotFound, InjectNotFound) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PhaseProgressionLocked as e:
        raise HTTPException(status_code=423, detail=str(e))
    except InvalidPhaseTransition as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to advance phase: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
