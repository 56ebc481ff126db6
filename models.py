"""
資料模型

- Exercise：演練（Facilitator 擁有）
- Inject：演練中的情境事件，以 inject_number 在 Exercise 內唯一識別
- Participant：參與者，記錄目前位置（inject / phase）與總分
- Response：參與者提交的回答，建立後不可修改
"""
import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def default_exercise_settings() -> dict:
    return {
        "scoring_enabled": True,
        "auto_release": False,
        "show_scores": True,
    }


class ExerciseStatus(str, enum.Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class ParticipantStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    REMOVED = "removed"


class Exercise(Base):
    __tablename__ = "exercises"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="")
    facilitator_id = Column(String(64), nullable=False, index=True)
    access_code = Column(String(16), nullable=False, unique=True, index=True)
    max_participants = Column(Integer, nullable=False, default=50)
    settings = Column(JSON, nullable=False, default=default_exercise_settings)
    status = Column(Enum(ExerciseStatus), nullable=False, default=ExerciseStatus.DRAFT)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    injects = relationship(
        "Inject",
        back_populates="exercise",
        order_by="Inject.inject_number",
        cascade="all, delete-orphan",
    )
    participants = relationship(
        "Participant",
        back_populates="exercise",
        cascade="all, delete-orphan",
    )


class Inject(Base):
    __tablename__ = "injects"
    __table_args__ = (
        UniqueConstraint("exercise_id", "inject_number", name="uq_inject_exercise_number"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    exercise_id = Column(String(36), ForeignKey("exercises.id", ondelete="CASCADE"), nullable=False, index=True)
    inject_number = Column(Integer, nullable=False)
    title = Column(String(200), nullable=False)
    narrative = Column(Text, nullable=False, default="")
    artifacts = Column(JSON, nullable=False, default=list)
    phases = Column(JSON, nullable=False, default=list)
    order = Column(Integer, nullable=False)

    # 生命週期欄位：只透過 core.inject_lifecycle 的條件式更新修改
    is_active = Column(Boolean, nullable=False, default=False)
    release_time = Column(DateTime(timezone=True), nullable=True)
    responses_open = Column(Boolean, nullable=False, default=False)
    phase_progression_locked = Column(Boolean, nullable=False, default=False)

    exercise = relationship("Exercise", back_populates="injects")


class Participant(Base):
    __tablename__ = "participants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    participant_id = Column(String(16), nullable=False, unique=True, index=True)
    exercise_id = Column(String(36), ForeignKey("exercises.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    team = Column(String(100), nullable=True)
    status = Column(Enum(ParticipantStatus), nullable=False, default=ParticipantStatus.ACTIVE)
    current_inject = Column(Integer, nullable=False, default=0)
    current_phase = Column(Integer, nullable=False, default=1)
    total_score = Column(Integer, nullable=False, default=0)
    joined_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    exercise = relationship("Exercise", back_populates="participants")
    responses = relationship(
        "Response",
        back_populates="participant",
        order_by="Response.id",
        cascade="all, delete-orphan",
    )


class Response(Base):
    __tablename__ = "responses"
    __table_args__ = (
        UniqueConstraint("participant_pk", "inject_number", "phase_id", name="uq_response_phase"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    participant_pk = Column(Integer, ForeignKey("participants.id", ondelete="CASCADE"), nullable=False, index=True)
    inject_number = Column(Integer, nullable=False)
    phase_id = Column(String(64), nullable=False)
    content = Column(Text, nullable=False)
    points_earned = Column(Integer, nullable=False, default=0)
    timestamp = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    participant = relationship("Participant", back_populates="responses")
