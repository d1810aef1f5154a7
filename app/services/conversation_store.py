"""
File: app/services/conversation_store.py
Project: Evolution WhatsApp Console

Purpose:
Conversations keyed by (company, phone) and their append-only message log.

This is the ONLY place allowed to:
- create a conversation
- reopen / close a conversation
- append a message

Design rules:
- Conversation resolution is idempotent (unique (company_id, phone))
- Message insertion is not deduplicated (at-least-once delivery)
- SQLAlchemy failures are rolled back and re-raised as StoreError
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.errors import NotFoundError, StoreError, ValidationError
from app.models import (
    CONVERSATION_CLOSED,
    CONVERSATION_OPEN,
    Conversation,
    Message,
)

logger = logging.getLogger("conversation_store")

_STATUSES = (CONVERSATION_OPEN, CONVERSATION_CLOSED)


def _now() -> datetime:
    return datetime.now(timezone.utc)


# -------------------------------------------------
# Queries
# -------------------------------------------------

def _read(db: Session, what: str, run):
    try:
        return run()
    except SQLAlchemyError as e:
        db.rollback()
        raise StoreError(f"Could not load {what}: {e}") from e


def find_by_phone(db: Session, *, company_id: UUID, phone: str) -> Conversation | None:
    return _read(db, "conversation", lambda: (
        db.query(Conversation)
        .filter(
            Conversation.company_id == company_id,
            Conversation.phone == phone,
        )
        .one_or_none()
    ))


def get_conversation(
    db: Session,
    *,
    conversation_id: UUID,
    company_id: UUID,
) -> Conversation | None:
    return _read(db, "conversation", lambda: (
        db.query(Conversation)
        .filter(
            Conversation.id == conversation_id,
            Conversation.company_id == company_id,
        )
        .one_or_none()
    ))


def list_conversations(
    db: Session,
    *,
    company_id: UUID,
    status: str | None = None,
    limit: int = 50,
) -> list[Conversation]:
    query = db.query(Conversation).filter(Conversation.company_id == company_id)
    if status is not None:
        if status not in _STATUSES:
            raise ValidationError(f"Invalid conversation status: {status}")
        query = query.filter(Conversation.status == status)

    return _read(db, "conversations", lambda: query.order_by(Conversation.updated_at.desc()).limit(limit).all())


def list_messages(
    db: Session,
    *,
    conversation_id: UUID,
    limit: int = 50,
    before: datetime | None = None,
) -> list[Message]:
    """
    One page of history, oldest first. `before` pages backwards.
    """
    query = db.query(Message).filter(Message.conversation_id == conversation_id)
    if before is not None:
        query = query.filter(Message.created_at < before)

    page = _read(db, "messages", lambda: query.order_by(Message.created_at.desc()).limit(limit).all())
    page.reverse()
    return page


# -------------------------------------------------
# Commands
# -------------------------------------------------

def create_conversation(
    db: Session,
    *,
    company_id: UUID,
    phone: str,
    instance_id: UUID | None,
) -> Conversation:
    conversation = Conversation(
        company_id=company_id,
        phone=phone,
        instance_id=instance_id,
        status=CONVERSATION_OPEN,
    )
    try:
        db.add(conversation)
        db.commit()
        db.refresh(conversation)
        return conversation
    except IntegrityError:
        db.rollback()
    except SQLAlchemyError as e:
        db.rollback()
        raise StoreError(f"Could not create conversation: {e}") from e

    # Lost a race on (company_id, phone): the other writer's row wins.
    existing = find_by_phone(db, company_id=company_id, phone=phone)
    if existing is None:
        raise StoreError(f"Could not create conversation for {phone}")
    return existing


def reopen(db: Session, *, conversation_id: UUID) -> None:
    try:
        updated = (
            db.query(Conversation)
            .filter(Conversation.id == conversation_id)
            .update(
                {"status": CONVERSATION_OPEN, "updated_at": _now()},
                synchronize_session="fetch",
            )
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StoreError(f"Could not reopen conversation: {e}") from e

    if not updated:
        raise NotFoundError(f"Conversation not found: {conversation_id}")


def resolve_for_inbound(
    db: Session,
    *,
    company_id: UUID,
    phone: str,
    instance_id: UUID,
) -> Conversation:
    """
    Find-or-create the conversation for an inbound message.
    A closed conversation is reopened on new contact.
    """
    conversation = find_by_phone(db, company_id=company_id, phone=phone)
    if conversation is None:
        conversation = create_conversation(
            db,
            company_id=company_id,
            phone=phone,
            instance_id=instance_id,
        )
        logger.info("Conversation created for %s (%s)", phone, conversation.id)
        return conversation

    if conversation.status != CONVERSATION_OPEN:
        reopen(db, conversation_id=conversation.id)
        db.refresh(conversation)
        logger.info("Conversation %s reopened", conversation.id)

    return conversation


def append_message(
    db: Session,
    *,
    conversation_id: UUID,
    from_me: bool,
    body: str,
) -> Message:
    message = Message(
        conversation_id=conversation_id,
        from_me=from_me,
        body=body,
    )
    try:
        db.add(message)
        db.commit()
        db.refresh(message)
    except SQLAlchemyError as e:
        db.rollback()
        raise StoreError(f"Could not save message: {e}") from e

    return message


def set_status(
    db: Session,
    *,
    conversation_id: UUID,
    company_id: UUID,
    status: str,
) -> Conversation:
    if status not in _STATUSES:
        raise ValidationError(f"Invalid conversation status: {status}")

    conversation = get_conversation(db, conversation_id=conversation_id, company_id=company_id)
    if not conversation:
        raise NotFoundError(f"Conversation not found: {conversation_id}")

    if conversation.status == status:
        return conversation

    try:
        conversation.status = status
        conversation.updated_at = _now()
        db.commit()
        db.refresh(conversation)
    except SQLAlchemyError as e:
        db.rollback()
        raise StoreError(f"Could not update conversation: {e}") from e

    return conversation


def serialize_conversation(conversation: Conversation) -> dict:
    return {
        "id": str(conversation.id),
        "company_id": str(conversation.company_id),
        "phone": conversation.phone,
        "instance_id": str(conversation.instance_id) if conversation.instance_id else None,
        "status": conversation.status,
        "created_at": conversation.created_at.isoformat() if conversation.created_at else None,
        "updated_at": conversation.updated_at.isoformat() if conversation.updated_at else None,
    }


def serialize_message(message: Message) -> dict:
    return {
        "id": str(message.id),
        "conversation_id": str(message.conversation_id),
        "from_me": message.from_me,
        "body": message.body,
        "created_at": message.created_at.isoformat() if message.created_at else None,
    }
