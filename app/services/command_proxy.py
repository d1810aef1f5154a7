"""
File: app/services/command_proxy.py
Project: Evolution WhatsApp Console

Purpose:
Control plane for WhatsApp instances. Validates a management command,
calls the Evolution gateway, and keeps the local instance registry and
conversation store in step.

Actions:
- create                create on the gateway, then register locally
- connect / qrcode      fetch the pairing QR; an already-open state marks
                        the instance connected
- status                poll the gateway state and cache it
- disconnect / logout   log out on the gateway, cache disconnected
- delete                best-effort gateway delete, unconditional local delete
- send                  send a text message, then record it on the conversation

Design rules:
- Single attempt per gateway call, no automatic retries
- Gateway call first, local write second; a failed gateway call writes nothing
- Every local write is scoped to the caller's company
- send: once the gateway accepted the message the command succeeds, even if
  recording it locally fails ("recorded": false in the result)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.errors import GatewayError, NotFoundError, StoreError, ValidationError
from app.evolution.client import EvolutionClient
from app.evolution.state import extract_state, is_open, translate_state
from app.models import INSTANCE_CONNECTED, INSTANCE_DISCONNECTED
from app.services import conversation_store, instance_registry

logger = logging.getLogger("command_proxy")


@dataclass(frozen=True)
class Command:
    action: str
    instance_name: Optional[str] = None
    instance_id: Optional[str] = None
    phone: Optional[str] = None
    message: Optional[str] = None
    conversation_id: Optional[str] = None


def normalise_phone(raw: str | None) -> str:
    return re.sub(r"\D", "", raw or "")


def _parse_uuid(value: str | None, field: str) -> UUID | None:
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError as e:
        raise ValidationError(f"Invalid {field}: {value}") from e


def _as_dict(result: Any) -> Dict[str, Any]:
    if isinstance(result, dict):
        return dict(result)
    return {"data": result}


class CommandProxy:
    def __init__(self, db: Session, gateway: EvolutionClient, *, company_id: UUID) -> None:
        self._db = db
        self._gateway = gateway
        self._company_id = company_id

        self._handlers: Dict[str, Callable[[Command], Dict[str, Any]]] = {
            "create": self._create,
            "connect": self._connect,
            "qrcode": self._connect,
            "status": self._status,
            "disconnect": self._logout,
            "logout": self._logout,
            "delete": self._delete,
            "send": self._send,
        }

    # ------------------------------------------------------------------
    # Public entry
    # ------------------------------------------------------------------
    def execute(self, command: Command) -> Dict[str, Any]:
        handler = self._handlers.get(command.action)
        if handler is None:
            raise ValidationError(f"Unknown action: {command.action}")

        logger.info(
            "Action: %s, Instance: %s",
            command.action,
            command.instance_name or command.instance_id,
        )
        return handler(command)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _require_name(command: Command) -> str:
        name = (command.instance_name or "").strip()
        if not name:
            raise ValidationError("Instance name required")
        return name

    def _target_instance_id(self, instance_id: UUID | None, name: str) -> UUID | None:
        if instance_id is not None:
            return instance_id

        instance = instance_registry.find_by_name(self._db, instance_name=name)
        if instance is not None and instance.company_id == self._company_id:
            return instance.id
        return None

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------
    def _create(self, command: Command) -> Dict[str, Any]:
        name = self._require_name(command)

        result = _as_dict(self._gateway.create_instance(name))

        try:
            instance = instance_registry.create_instance(
                self._db,
                company_id=self._company_id,
                instance_name=name,
            )
        except StoreError:
            logger.exception("Gateway created %s but the local insert failed", name)
            raise

        result["instance"] = instance_registry.serialize_instance(instance)
        return result

    def _connect(self, command: Command) -> Dict[str, Any]:
        name = self._require_name(command)
        instance_id = _parse_uuid(command.instance_id, "instanceId")

        result = _as_dict(self._gateway.connect(name))

        # No QR when the session is already open; that state is as
        # authoritative as a connection.update webhook.
        if is_open(result):
            target_id = self._target_instance_id(instance_id, name)
            if target_id is not None:
                instance_registry.apply_status(
                    self._db,
                    instance_id=target_id,
                    status=INSTANCE_CONNECTED,
                    company_id=self._company_id,
                )
            result["status"] = INSTANCE_CONNECTED

        return result

    def _status(self, command: Command) -> Dict[str, Any]:
        name = self._require_name(command)
        instance_id = _parse_uuid(command.instance_id, "instanceId")

        result = _as_dict(self._gateway.connection_state(name))
        status = translate_state(extract_state(result))

        if instance_id is not None:
            instance_registry.apply_status(
                self._db,
                instance_id=instance_id,
                status=status,
                company_id=self._company_id,
            )

        result["status"] = status
        return result

    def _logout(self, command: Command) -> Dict[str, Any]:
        name = self._require_name(command)
        instance_id = _parse_uuid(command.instance_id, "instanceId")

        result = _as_dict(self._gateway.logout(name))

        if instance_id is not None:
            instance_registry.apply_status(
                self._db,
                instance_id=instance_id,
                status=INSTANCE_DISCONNECTED,
                company_id=self._company_id,
            )

        result["status"] = INSTANCE_DISCONNECTED
        return result

    def _delete(self, command: Command) -> Dict[str, Any]:
        name = self._require_name(command)
        instance_id = _parse_uuid(command.instance_id, "instanceId")

        try:
            self._gateway.delete(name)
        except GatewayError as e:
            if e.is_not_found:
                logger.info("Instance %s does not exist on the gateway", name)
            else:
                logger.warning("Gateway delete failed for %s: %s", name, e)

        deleted = False
        if instance_id is not None:
            deleted = instance_registry.delete_instance(
                self._db,
                instance_id=instance_id,
                company_id=self._company_id,
            )

        return {"success": True, "deleted": deleted}

    def _send(self, command: Command) -> Dict[str, Any]:
        name = (command.instance_name or "").strip()
        if not name or not command.phone or not command.message:
            raise ValidationError("Instance name, phone and message required")

        phone = normalise_phone(command.phone)
        if not phone:
            raise ValidationError(f"Invalid phone: {command.phone}")
        conversation_id = _parse_uuid(command.conversation_id, "conversationId")

        result = _as_dict(
            self._gateway.send_text(name, to_phone=phone, body=command.message)
        )

        recorded = False
        if conversation_id is not None:
            recorded = self._record_outbound(conversation_id, command.message)

        result["recorded"] = recorded
        return result

    def _record_outbound(self, conversation_id: UUID, body: str) -> bool:
        try:
            conversation = conversation_store.get_conversation(
                self._db,
                conversation_id=conversation_id,
                company_id=self._company_id,
            )
            if conversation is None:
                raise NotFoundError(f"Conversation not found: {conversation_id}")

            conversation_store.append_message(
                self._db,
                conversation_id=conversation.id,
                from_me=True,
                body=body,
            )
        except (NotFoundError, StoreError):
            logger.exception("Message sent but not recorded on %s", conversation_id)
            return False

        return True
