"""
File: app/models.py

Project: Evolution WhatsApp Console

Purpose:
SQLAlchemy ORM models for the tables the console shares with the managed
backend. The realtime change feed consumed by the dashboard fires on
writes to these same tables.

Design principles:
- No business logic in models
- Tenant (company) isolation is a column on every tenant-owned table
- Relationships kept minimal and explicit
- Messages are append-only

Invariants enforced by the schema:
- instance_name is unique (it is the join key with the gateway)
- (company_id, phone) is unique on conversations
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

INSTANCE_CONNECTED = "connected"
INSTANCE_DISCONNECTED = "disconnected"

CONVERSATION_OPEN = "open"
CONVERSATION_CLOSED = "closed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------
# Company (tenant)
# ---------------------------------------------------------------------
class Company(Base):
    __tablename__ = "companies"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now())


# ---------------------------------------------------------------------
# Profile (authenticated user -> company)
# ---------------------------------------------------------------------
class Profile(Base):
    __tablename__ = "profiles"

    # Same id as the identity provider's user
    id = Column(Uuid, primary_key=True)
    company_id = Column(Uuid, ForeignKey("companies.id"), nullable=True)
    full_name = Column(Text, nullable=True)
    email = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now())

    company = relationship("Company")


# ---------------------------------------------------------------------
# WhatsApp instance
# ---------------------------------------------------------------------
class WhatsAppInstance(Base):
    __tablename__ = "whatsapp_instances"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid, ForeignKey("companies.id"), nullable=False)
    instance_name = Column(Text, nullable=False, unique=True)
    status = Column(Text, nullable=False, default=INSTANCE_DISCONNECTED, server_default=INSTANCE_DISCONNECTED)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "status IN ('connected', 'disconnected')",
            name="ck_whatsapp_instances_status",
        ),
    )

    company = relationship("Company")


# ---------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------
class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid, ForeignKey("companies.id"), nullable=False)
    phone = Column(Text, nullable=False)
    instance_id = Column(
        Uuid,
        ForeignKey("whatsapp_instances.id", ondelete="SET NULL"),
        nullable=True,
    )
    status = Column(Text, nullable=False, default=CONVERSATION_OPEN, server_default=CONVERSATION_OPEN)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "status IN ('open', 'closed')",
            name="ck_conversations_status",
        ),
        UniqueConstraint(
            "company_id",
            "phone",
            name="uq_conversations_company_phone",
        ),
    )

    company = relationship("Company")
    instance = relationship("WhatsAppInstance")


# ---------------------------------------------------------------------
# Message (immutable)
# ---------------------------------------------------------------------
class Message(Base):
    __tablename__ = "messages"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    conversation_id = Column(
        Uuid,
        ForeignKey("conversations.id"),
        nullable=False,
    )
    from_me = Column(Boolean, nullable=False, default=False)
    body = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now())

    conversation = relationship("Conversation")


Index(
    "ix_messages_conversation_created",
    Message.conversation_id,
    Message.created_at,
)
