"""
File: app/admin/routes.py

Project: Evolution WhatsApp Console

Purpose:
Operator endpoints for the dashboard, scoped to the caller's company.

Endpoints:
- GET   /admin/summary
- GET   /admin/instances
- PATCH /admin/instances/{instance_id}                    (local rename)
- GET   /admin/conversations?status=open|closed
- GET   /admin/conversations/{conversation_id}/messages
- POST  /admin/conversations/{conversation_id}/status     (open / close)

Design rules:
- Read-only by default
- Explicit, controlled writes only where stated
- No gateway calls; instance lifecycle goes through /functions/evolution-api
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.auth import get_company_id
from app.db import get_db
from app.errors import NotFoundError
from app.models import (
    CONVERSATION_OPEN,
    INSTANCE_CONNECTED,
    Conversation,
    Profile,
    WhatsAppInstance,
)
from app.schemas import ConversationStatusRequest, RenameInstanceRequest
from app.services import conversation_store, instance_registry

router = APIRouter(prefix="/admin", tags=["admin"])


# -------------------------------------------------------------------
# Dashboard summary
# -------------------------------------------------------------------
@router.get("/summary")
def company_summary(
    company_id: UUID = Depends(get_company_id),
    db: Session = Depends(get_db),
):
    return {
        "total_conversations": db.query(func.count(Conversation.id))
        .filter(Conversation.company_id == company_id)
        .scalar()
        or 0,
        "open_conversations": db.query(func.count(Conversation.id))
        .filter(
            Conversation.company_id == company_id,
            Conversation.status == CONVERSATION_OPEN,
        )
        .scalar()
        or 0,
        "total_instances": db.query(func.count(WhatsAppInstance.id))
        .filter(WhatsAppInstance.company_id == company_id)
        .scalar()
        or 0,
        "connected_instances": db.query(func.count(WhatsAppInstance.id))
        .filter(
            WhatsAppInstance.company_id == company_id,
            WhatsAppInstance.status == INSTANCE_CONNECTED,
        )
        .scalar()
        or 0,
        "total_users": db.query(func.count(Profile.id))
        .filter(Profile.company_id == company_id)
        .scalar()
        or 0,
    }


# -------------------------------------------------------------------
# Instances
# -------------------------------------------------------------------
@router.get("/instances")
def list_instances(
    company_id: UUID = Depends(get_company_id),
    db: Session = Depends(get_db),
):
    return [
        instance_registry.serialize_instance(i)
        for i in instance_registry.list_instances(db, company_id=company_id)
    ]


@router.patch("/instances/{instance_id}")
def rename_instance(
    instance_id: UUID,
    request: RenameInstanceRequest,
    company_id: UUID = Depends(get_company_id),
    db: Session = Depends(get_db),
):
    instance = instance_registry.rename_instance(
        db,
        instance_id=instance_id,
        company_id=company_id,
        new_name=request.instance_name,
    )
    if not instance:
        raise NotFoundError("Instance not found")

    # The gateway keeps the old name; webhook events will no longer match.
    return {
        "instance": instance_registry.serialize_instance(instance),
        "gateway_renamed": False,
    }


# -------------------------------------------------------------------
# Conversations
# -------------------------------------------------------------------
@router.get("/conversations")
def list_conversations(
    status: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=200),
    company_id: UUID = Depends(get_company_id),
    db: Session = Depends(get_db),
):
    rows = conversation_store.list_conversations(
        db,
        company_id=company_id,
        status=status,
        limit=limit,
    )
    return [conversation_store.serialize_conversation(c) for c in rows]


@router.get("/conversations/{conversation_id}/messages")
def list_conversation_messages(
    conversation_id: UUID,
    limit: int = Query(default=50, ge=1, le=200),
    before: Optional[datetime] = None,
    company_id: UUID = Depends(get_company_id),
    db: Session = Depends(get_db),
):
    conversation = conversation_store.get_conversation(
        db,
        conversation_id=conversation_id,
        company_id=company_id,
    )
    if not conversation:
        raise NotFoundError("Conversation not found")

    rows = conversation_store.list_messages(
        db,
        conversation_id=conversation.id,
        limit=limit,
        before=before,
    )
    return [conversation_store.serialize_message(m) for m in rows]


@router.post("/conversations/{conversation_id}/status")
def set_conversation_status(
    conversation_id: UUID,
    request: ConversationStatusRequest,
    company_id: UUID = Depends(get_company_id),
    db: Session = Depends(get_db),
):
    conversation = conversation_store.set_status(
        db,
        conversation_id=conversation_id,
        company_id=company_id,
        status=request.status,
    )
    return conversation_store.serialize_conversation(conversation)
