"""
File: app/services/instance_registry.py
Project: Evolution WhatsApp Console

Purpose:
Local record of WhatsApp instances and their cached connection status.

The cached status has three refresh paths (status poll, connect
side effect, connection.update webhook). All of them write through
apply_status(); nothing else updates the status column.

Design rules:
- Tenant-scoped wherever a caller supplies a company
- SQLAlchemy failures are rolled back and re-raised as StoreError
- No gateway calls here
"""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.errors import StoreError, ValidationError
from app.models import (
    INSTANCE_CONNECTED,
    INSTANCE_DISCONNECTED,
    Conversation,
    WhatsAppInstance,
)

logger = logging.getLogger("instance_registry")

_STATUSES = (INSTANCE_CONNECTED, INSTANCE_DISCONNECTED)


# -------------------------------------------------
# Queries
# -------------------------------------------------

def _read(db: Session, what: str, run):
    try:
        return run()
    except SQLAlchemyError as e:
        db.rollback()
        raise StoreError(f"Could not load {what}: {e}") from e


def find_by_name(db: Session, *, instance_name: str) -> WhatsAppInstance | None:
    return _read(db, "instance", lambda: (
        db.query(WhatsAppInstance)
        .filter(WhatsAppInstance.instance_name == instance_name)
        .one_or_none()
    ))


def get_instance(
    db: Session,
    *,
    instance_id: UUID,
    company_id: UUID,
) -> WhatsAppInstance | None:
    return _read(db, "instance", lambda: (
        db.query(WhatsAppInstance)
        .filter(
            WhatsAppInstance.id == instance_id,
            WhatsAppInstance.company_id == company_id,
        )
        .one_or_none()
    ))


def list_instances(db: Session, *, company_id: UUID) -> list[WhatsAppInstance]:
    return _read(db, "instances", lambda: (
        db.query(WhatsAppInstance)
        .filter(WhatsAppInstance.company_id == company_id)
        .order_by(WhatsAppInstance.created_at.desc())
        .all()
    ))


# -------------------------------------------------
# Commands
# -------------------------------------------------

def create_instance(
    db: Session,
    *,
    company_id: UUID,
    instance_name: str,
) -> WhatsAppInstance:
    instance = WhatsAppInstance(
        company_id=company_id,
        instance_name=instance_name,
        status=INSTANCE_DISCONNECTED,
    )
    try:
        db.add(instance)
        db.commit()
        db.refresh(instance)
    except IntegrityError as e:
        db.rollback()
        raise StoreError(f"Instance name already registered: {instance_name}") from e
    except SQLAlchemyError as e:
        db.rollback()
        raise StoreError(f"Could not save instance: {e}") from e

    return instance


def apply_status(
    db: Session,
    *,
    instance_id: UUID,
    status: str,
    company_id: UUID | None = None,
) -> bool:
    """
    Overwrite the cached status (last writer wins).

    Returns:
        True  -> a row was updated
        False -> no such instance (for this company, when given)
    """
    if status not in _STATUSES:
        raise ValidationError(f"Invalid instance status: {status}")

    query = db.query(WhatsAppInstance).filter(WhatsAppInstance.id == instance_id)
    if company_id is not None:
        query = query.filter(WhatsAppInstance.company_id == company_id)

    try:
        updated = query.update({"status": status}, synchronize_session="fetch")
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StoreError(f"Could not update instance status: {e}") from e

    if not updated:
        logger.info("Status %s not applied: instance %s not found", status, instance_id)
    return bool(updated)


def delete_instance(
    db: Session,
    *,
    instance_id: UUID,
    company_id: UUID,
) -> bool:
    """
    Removes the instance row. Conversations keep their history and are
    detached from the instance.

    Returns:
        True  -> instance was removed
        False -> instance did not exist for this company
    """
    instance = get_instance(db, instance_id=instance_id, company_id=company_id)
    if not instance:
        return False

    try:
        (
            db.query(Conversation)
            .filter(Conversation.instance_id == instance.id)
            .update({"instance_id": None}, synchronize_session="fetch")
        )
        db.delete(instance)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StoreError(f"Could not delete instance: {e}") from e

    return True


def rename_instance(
    db: Session,
    *,
    instance_id: UUID,
    company_id: UUID,
    new_name: str,
) -> WhatsAppInstance | None:
    """
    Local rename only. The gateway keeps the old name, so webhook events
    for this instance stop resolving after a rename.
    """
    new_name = (new_name or "").strip()
    if not new_name:
        raise ValidationError("Instance name required")

    instance = get_instance(db, instance_id=instance_id, company_id=company_id)
    if not instance:
        return None

    old_name = instance.instance_name
    try:
        instance.instance_name = new_name
        db.commit()
        db.refresh(instance)
    except IntegrityError as e:
        db.rollback()
        raise StoreError(f"Instance name already registered: {new_name}") from e
    except SQLAlchemyError as e:
        db.rollback()
        raise StoreError(f"Could not rename instance: {e}") from e

    logger.warning(
        "Instance %s renamed locally %s -> %s; gateway still knows it as %s",
        instance.id,
        old_name,
        new_name,
        old_name,
    )
    return instance


def serialize_instance(instance: WhatsAppInstance) -> dict:
    return {
        "id": str(instance.id),
        "company_id": str(instance.company_id),
        "instance_name": instance.instance_name,
        "status": instance.status,
        "created_at": instance.created_at.isoformat() if instance.created_at else None,
    }
