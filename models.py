# models.py
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from db import Base

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow_naive() -> datetime:
    # App convention: DB stores naive timestamps representing UTC.
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    __tablename__ = "users"

    # Same id as the auth backend's user, so sessions map 1:1 onto rows
    id = Column(Uuid, primary_key=True, default=uuid4)
    email = Column(String, unique=True, nullable=False)
    created_at = Column(DateTime, default=utcnow_naive, nullable=False)

    assistants = relationship(
        "Assistant",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Assistant(Base):
    """A user's registration of a Vapi assistant id.

    model / voice / first_message are display copies of the remote config,
    refreshed whenever the assistant is edited through this service.
    """

    __tablename__ = "assistants"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    vapi_assistant_id = Column(String, nullable=False)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)

    model = Column(String, nullable=True)
    voice = Column(String, nullable=True)
    first_message = Column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    metadata_json = Column("metadata", JSONType, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=utcnow_naive, nullable=False)
    updated_at = Column(DateTime, default=utcnow_naive, nullable=False)

    user = relationship("User", back_populates="assistants")
    calls = relationship("CallHistory", back_populates="assistant", passive_deletes=True)

    __table_args__ = (
        UniqueConstraint("user_id", "vapi_assistant_id", name="uq_assistants_user_vapi_id"),
    )


class CallHistory(Base):
    __tablename__ = "call_history"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    assistant_id = Column(Uuid, ForeignKey("assistants.id", ondelete="SET NULL"), nullable=True)

    vapi_call_id = Column(String, nullable=False)
    assistant_name = Column(String, nullable=True)

    status = Column(String, nullable=True)          # "queued", "in-progress", "ended", ...
    ended_reason = Column(String, nullable=True)    # e.g. "assistant-ended-call"
    duration = Column(Float, nullable=True)         # seconds
    cost = Column(Float, nullable=True)
    phone_number = Column(String, nullable=True)
    transcript = Column(Text, nullable=True)        # only fetched once the call has ended
    metadata_json = Column("metadata", JSONType, nullable=True)

    # Remote creation time of the call
    created_at = Column(DateTime, default=utcnow_naive, nullable=False)
    updated_at = Column(DateTime, default=utcnow_naive, nullable=False)

    assistant = relationship("Assistant", back_populates="calls")

    __table_args__ = (
        UniqueConstraint("user_id", "vapi_call_id", name="uq_call_history_user_call"),
        Index("ix_call_history_user_created", "user_id", "created_at"),
        Index("ix_call_history_assistant", "assistant_id"),
    )
