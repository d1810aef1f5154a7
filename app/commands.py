"""
File: app/commands.py

Project: Evolution WhatsApp Console

Purpose:
Command proxy HTTP entry point (authenticated).

POST /functions/evolution-api
    body: {action, instanceName?, instanceId?, phone?, message?, conversationId?}

Responses:
- success: gateway result merged with local fields ("instance", "status", ...)
- failure: {"error": "..."} with a non-2xx status (see app.main error handlers)

Design rules:
- No business logic here; everything is delegated to CommandProxy
"""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.auth import get_company_id
from app.db import get_db
from app.evolution.client import EvolutionClient
from app.evolution.factory import get_evolution_client
from app.schemas import EvolutionCommandRequest
from app.services.command_proxy import Command, CommandProxy

router = APIRouter(prefix="/functions", tags=["evolution"])


@router.post("/evolution-api")
def evolution_api(
    request: EvolutionCommandRequest,
    company_id: UUID = Depends(get_company_id),
    db: Session = Depends(get_db),
    gateway: EvolutionClient = Depends(get_evolution_client),
):
    command = Command(
        action=request.action,
        instance_name=request.instance_name,
        instance_id=request.instance_id,
        phone=request.phone,
        message=request.message,
        conversation_id=request.conversation_id,
    )
    return CommandProxy(db, gateway, company_id=company_id).execute(command)
