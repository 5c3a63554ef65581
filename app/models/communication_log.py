from sqlalchemy import Column, String, Text, DateTime, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
import uuid

from app.core.database import Base
from app.models.automation_job import JSONType
from app.utils.clock import utcnow


class CommunicationLog(Base):
    """One row per send attempt. Rows are inserted, never updated."""

    __tablename__ = "communication_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    job_id = Column(UUID(as_uuid=True), ForeignKey("automation_queue.id", ondelete="SET NULL"), nullable=True, index=True)
    client_id = Column(String, nullable=True)
    profile_id = Column(String, nullable=True)
    channel = Column(String, nullable=False, index=True)  # email, whatsapp, or the raw unsupported action
    recipient = Column(String, nullable=True)
    subject = Column(String, nullable=True)
    message = Column(Text, nullable=True)
    status = Column(String, nullable=False, index=True)  # sent, failed
    provider_response = Column(JSONType, nullable=True)
    provider_message_id = Column(String, nullable=True)
    sent_by = Column(String, nullable=True, index=True)
    follow_up_id = Column(String, nullable=True)
    sent_at = Column(DateTime, nullable=False, default=utcnow, index=True)
