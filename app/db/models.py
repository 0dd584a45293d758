"""Database models."""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _uuid() -> str:
    return str(uuid4())


class Scenario(Base):
    """IVR scenario model.

    Holds the newest version; ``scenario_data`` has its questions and
    transitions. Every saved version is kept in ``scenario_versions``.
    """

    __tablename__ = "scenarios"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    scenario_data = Column(JSON, nullable=False)
    is_active = Column(Boolean, default=False, nullable=False)
    version = Column(Integer, default=1, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    # Relationships
    calls = relationship("CallLog", back_populates="scenario")
    versions = relationship(
        "ScenarioVersion",
        back_populates="scenario",
        cascade="all, delete-orphan",
        order_by="ScenarioVersion.version",
    )


class ScenarioVersion(Base):
    """Scenario content as saved at one version. Rows are never updated."""

    __tablename__ = "scenario_versions"
    __table_args__ = (
        UniqueConstraint("scenario_id", "version", name="uq_scenario_versions_scenario_version"),
    )

    id = Column(Integer, primary_key=True, index=True)
    scenario_id = Column(String(36), ForeignKey("scenarios.id"), nullable=False, index=True)
    version = Column(Integer, nullable=False)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    scenario_data = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    # Relationships
    scenario = relationship("Scenario", back_populates="versions")


class CallLog(Base):
    """Call metadata model."""

    __tablename__ = "call_logs"

    id = Column(Integer, primary_key=True, index=True)
    call_sid = Column(String, unique=True, index=True, nullable=False)
    phone_number = Column(String, nullable=True)
    scenario_id = Column(String(36), ForeignKey("scenarios.id"), nullable=True)
    scenario_version = Column(Integer, nullable=True)
    status = Column(String, default="initiated", nullable=False)  # initiated, in_progress, completed, failed, no_answer
    started_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    duration = Column(Integer, nullable=True)  # seconds
    error_message = Column(Text, nullable=True)

    # Relationships
    scenario = relationship("Scenario", back_populates="calls")
    responses = relationship(
        "CallResponse",
        back_populates="call_log",
        cascade="all, delete-orphan",
        order_by="CallResponse.id",
    )


class CallResponse(Base):
    """Answer collected during a call."""

    __tablename__ = "call_responses"

    id = Column(Integer, primary_key=True, index=True)
    call_log_id = Column(Integer, ForeignKey("call_logs.id"), nullable=False)
    question_id = Column(String, nullable=False)
    question_text = Column(Text, nullable=False, default="")
    answer_type = Column(String, nullable=False)  # dtmf, voice
    answer_value = Column(Text, nullable=True)
    answer_label = Column(String, nullable=True)
    audio_file_url = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    # Relationships
    call_log = relationship("CallLog", back_populates="responses")
