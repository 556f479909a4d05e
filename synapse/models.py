# synapse/models.py
import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Text, TIMESTAMP, Boolean, JSON, Index
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentStatus(str, enum.Enum):
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    ANALYZED = "analyzed"
    FAILED = "failed"
    ARCHIVED = "archived"


class Document(Base):
    __tablename__ = "documents"
    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(128), nullable=False, index=True)   # user id who uploaded
    title = Column(String, nullable=False)                      # original file name
    content_type = Column(String, nullable=False, default="application/octet-stream")
    size = Column(Integer, default=0)                           # bytes
    storage_path = Column(String, nullable=True)                # local path, minio object name or URL
    status = Column(String(16), nullable=False, default=DocumentStatus.UPLOADED.value)
    uploaded_at = Column(TIMESTAMP(timezone=True), default=_utcnow, server_default=func.now())
    analyzed_at = Column(TIMESTAMP(timezone=True), nullable=True)

    # AI outputs, written together by the analysis pipeline
    summary = Column(Text, nullable=True)
    key_points = Column(JSON, nullable=True)
    action_items = Column(JSON, nullable=True)
    alerts = Column(JSON, nullable=True)
    ai_score = Column(Integer, nullable=True)
    insights = Column(Integer, nullable=True)

    error = Column(Text, nullable=True)

    __table_args__ = (Index("ix_documents_user_uploaded", "user_id", "uploaded_at"),)


class Message(Base):
    __tablename__ = "messages"
    id = Column(String(36), primary_key=True, default=_new_id)
    chat_id = Column(String(128), nullable=False)
    sender_id = Column(String(128), nullable=False)
    sender = Column(String, nullable=False)                     # display name
    content = Column(Text, nullable=False)
    timestamp = Column(TIMESTAMP(timezone=True), default=_utcnow, server_default=func.now())
    is_bot = Column(Boolean, nullable=False, default=False)
    is_system = Column(Boolean, nullable=False, default=False)

    __table_args__ = (Index("ix_messages_chat_timestamp", "chat_id", "timestamp"),)
