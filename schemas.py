"""
API Schemas（Pydantic）

對外 JSON 一律使用 camelCase，內部欄位維持 snake_case。
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from models import ExerciseStatus, ParticipantStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class PatchModel(CamelModel):
    """
    部分更新的 body

    欄位可以省略，但不能明確給 null（對應的欄位都是 NOT NULL）
    """

    @model_validator(mode="after")
    def reject_explicit_nulls(self):
        nulls = sorted(name for name in self.model_fields_set if getattr(self, name) is None)
        if nulls:
            raise ValueError(f"Fields cannot be null: {nulls}")
        return self


# ============ Exercise ============

class ExerciseSettings(CamelModel):
    scoring_enabled: bool = True
    auto_release: bool = False
    show_scores: bool = True


class ExerciseCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    max_participants: Optional[int] = Field(None, ge=1)
    settings: Optional[ExerciseSettings] = None


class ExerciseUpdate(PatchModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    max_participants: Optional[int] = Field(None, ge=1)
    settings: Optional[ExerciseSettings] = None
    status: Optional[ExerciseStatus] = None


class InjectResponse(CamelModel):
    inject_number: int
    title: str
    narrative: str
    artifacts: List[Any]
    phases: List[Dict[str, Any]]
    order: int
    is_active: bool
    release_time: Optional[datetime] = None
    responses_open: bool
    phase_progression_locked: bool


class ExerciseResponse(CamelModel):
    id: str
    title: str
    description: str
    facilitator_id: str
    access_code: str
    max_participants: int
    settings: ExerciseSettings
    status: ExerciseStatus
    created_at: datetime
    updated_at: datetime
    injects: List[InjectResponse]


class ExerciseSummary(CamelModel):
    id: str
    title: str
    description: str
    status: ExerciseStatus
    access_code: str
    created_at: datetime


class ExerciseEnvelope(CamelModel):
    success: bool = True
    exercise: ExerciseResponse


# ============ Inject ============

class InjectCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    narrative: str = ""
    artifacts: List[Any] = Field(default_factory=list)
    phases: List[Dict[str, Any]] = Field(default_factory=list)


class InjectUpdate(PatchModel):
    """
    一般性的 Inject 更新

    刻意允許修改生命週期欄位（is_active / responses_open / phase_progression_locked），
    與受保護的 release 路徑分開。inject_number 與 release_time 不可修改。
    """
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    narrative: Optional[str] = None
    artifacts: Optional[List[Any]] = None
    phases: Optional[List[Dict[str, Any]]] = None
    is_active: Optional[bool] = None
    responses_open: Optional[bool] = None
    phase_progression_locked: Optional[bool] = None


class InjectEnvelope(CamelModel):
    success: bool = True
    message: Optional[str] = None
    inject: InjectResponse


class ReleaseInjectRequest(CamelModel):
    inject_number: int = Field(..., ge=1)


class ToggleResponsesRequest(CamelModel):
    inject_number: int = Field(..., ge=1)
    responses_open: bool


class TogglePhaseLockRequest(CamelModel):
    inject_number: int = Field(..., ge=1)
    phase_progression_locked: bool


# ============ Participant ============

class ParticipantJoin(CamelModel):
    access_code: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    team: Optional[str] = Field(None, max_length=100)


class ResponseRecord(CamelModel):
    inject_number: int
    phase_id: str
    content: str
    points_earned: int
    timestamp: datetime


class ParticipantResponse(CamelModel):
    participant_id: str
    exercise_id: str
    name: str
    team: Optional[str] = None
    status: ParticipantStatus
    current_inject: int
    current_phase: int
    # show_scores 關閉時由 API 層清空
    total_score: Optional[int] = None
    joined_at: datetime
    responses: List[ResponseRecord]


class ResponseSubmit(CamelModel):
    inject_number: int = Field(..., ge=1)
    phase_id: str = Field(..., min_length=1)
    content: str


class ResponseSubmitResult(CamelModel):
    success: bool = True
    response: ResponseRecord
    total_score: Optional[int] = None


# ============ Scores ============

class LeaderboardEntry(CamelModel):
    participant_id: str
    name: str
    team: Optional[str] = None
    total_score: int
    inject_scores: Dict[int, int]


class ScoreboardResponse(CamelModel):
    exercise_title: str
    total_participants: int
    leaderboard: List[LeaderboardEntry]
    average_score: float
