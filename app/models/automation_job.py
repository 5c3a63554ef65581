"""Automation queue model."""

from sqlalchemy import Column, String, Integer, Text, DateTime, JSON
from sqlalchemy.dialects.postgresql import UUID, JSONB
import enum
import uuid

from app.core.database import Base
from app.utils.clock import utcnow

JSONType = JSON().with_variant(JSONB(), "postgresql")


class JobStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SENT = "sent"
    FAILED = "failed"


class AutomationJob(Base):
    __tablename__ = "automation_queue"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    event_source = Column(String, nullable=False, default="api")  # api, manual_send, db_trigger
    event_table = Column(String, nullable=True)
    event_type = Column(String, nullable=True)
    payload = Column(JSONType, nullable=False, default=dict)
    status = Column(String, nullable=False, default=JobStatus.PENDING.value, index=True)
    attempts = Column(Integer, nullable=False, default=0)
    next_run_at = Column(DateTime, nullable=True, default=utcnow, index=True)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
