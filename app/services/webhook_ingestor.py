"""
File: app/services/webhook_ingestor.py
Project: Evolution WhatsApp Console

Purpose:
Event plane. Translates Evolution webhook events into local mutations:
- connection.update -> instance registry status
- messages.upsert   -> conversation store (find-or-create + append)
- anything else     -> acknowledged, ignored

Design rules:
- Events for unknown instances are dropped, never raised to the gateway
- Each message envelope in a batch is processed independently; one
  failure is logged and the rest of the batch continues
- Duplicate deliveries append duplicate messages (at-least-once), but never
  create a second conversation for the same phone
- Never deals with HTTP, FastAPI, or responses
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.errors import NotFoundError
from app.evolution.content import Unrecognized, parse_content
from app.evolution.state import extract_state, translate_state
from app.models import WhatsAppInstance
from app.services import conversation_store, instance_registry

logger = logging.getLogger("webhook_ingestor")

EVENT_CONNECTION_UPDATE = "connection.update"
EVENT_MESSAGES_UPSERT = "messages.upsert"
EVENT_MESSAGES_UPDATE = "messages.update"

JID_SUFFIXES = ("@s.whatsapp.net", "@g.us", "@c.us")


def normalise_event_type(raw: Any) -> str:
    """
    The gateway names events either "messages.upsert" or, with
    per-event webhooks enabled, "MESSAGES_UPSERT".
    """
    if not isinstance(raw, str):
        return ""
    return raw.strip().lower().replace("_", ".")


def phone_from_jid(remote_jid: Any) -> str:
    if not isinstance(remote_jid, str):
        return ""
    phone = remote_jid
    for suffix in JID_SUFFIXES:
        phone = phone.replace(suffix, "")
    return phone.strip()


@dataclass(frozen=True)
class WebhookEvent:
    event_type: str
    instance_name: str
    payload: Any = None

    @classmethod
    def from_body(cls, body: Any) -> Optional["WebhookEvent"]:
        """
        Returns None when the body has no event or no instance.
        """
        if not isinstance(body, dict):
            return None

        event_type = normalise_event_type(body.get("event"))
        instance_name = body.get("instance")
        if not event_type or not isinstance(instance_name, str) or not instance_name:
            return None

        return cls(event_type=event_type, instance_name=instance_name, payload=body.get("data"))


@dataclass(frozen=True)
class _Target:
    instance_id: UUID
    company_id: UUID
    instance_name: str


@dataclass
class IngestResult:
    event_type: str
    handled: bool = False
    messages_stored: int = 0
    skipped: int = 0
    failed: int = 0
    notes: List[str] = field(default_factory=list)


class WebhookIngestor:
    def __init__(self, db: Session) -> None:
        self._db = db

        self._handlers = {
            EVENT_CONNECTION_UPDATE: self._on_connection_update,
            EVENT_MESSAGES_UPSERT: self._on_messages_upsert,
        }

    # ------------------------------------------------------------------
    # Public entry
    # ------------------------------------------------------------------
    def ingest(self, event: WebhookEvent) -> IngestResult:
        result = IngestResult(event_type=event.event_type)

        try:
            instance = self._resolve_instance(event.instance_name)
        except NotFoundError:
            logger.info("[Webhook] Instance not found: %s", event.instance_name)
            result.notes.append("unknown_instance")
            return result

        handler = self._handlers.get(event.event_type)
        if handler is None:
            if event.event_type == EVENT_MESSAGES_UPDATE:
                logger.info("[Webhook] Message update event - ignored")
            else:
                logger.info("[Webhook] Unhandled event: %s", event.event_type)
            result.notes.append("ignored")
            return result

        handler(instance, event.payload, result)
        result.handled = True
        return result

    def _resolve_instance(self, instance_name: str) -> WhatsAppInstance:
        instance = instance_registry.find_by_name(self._db, instance_name=instance_name)
        if instance is None:
            raise NotFoundError(f"Instance not found: {instance_name}")
        return instance

    # ------------------------------------------------------------------
    # connection.update
    # ------------------------------------------------------------------
    def _on_connection_update(
        self,
        instance: WhatsAppInstance,
        payload: Any,
        result: IngestResult,
    ) -> None:
        status = translate_state(extract_state(payload))
        logger.info("[Webhook] Connection update: %s -> %s", instance.instance_name, status)

        instance_registry.apply_status(
            self._db,
            instance_id=instance.id,
            status=status,
        )

    # ------------------------------------------------------------------
    # messages.upsert
    # ------------------------------------------------------------------
    @staticmethod
    def _envelopes(payload: Any) -> List[Any]:
        if isinstance(payload, list):
            return payload
        if isinstance(payload, dict):
            messages = payload.get("messages")
            if isinstance(messages, list):
                return messages
            return [payload]
        return []

    def _on_messages_upsert(
        self,
        instance: WhatsAppInstance,
        payload: Any,
        result: IngestResult,
    ) -> None:
        # Plain values: a rollback below expires the ORM instance.
        target = _Target(
            instance_id=instance.id,
            company_id=instance.company_id,
            instance_name=instance.instance_name,
        )

        for envelope in self._envelopes(payload):
            try:
                stored = self._ingest_envelope(target, envelope)
            except Exception:
                self._db.rollback()
                logger.exception("[Webhook] Error saving message on %s", target.instance_name)
                result.failed += 1
                continue

            if stored:
                result.messages_stored += 1
            else:
                result.skipped += 1

    def _ingest_envelope(self, target: _Target, envelope: Any) -> bool:
        """
        Returns True when a message row was stored, False when skipped.
        """
        if not isinstance(envelope, dict):
            return False

        key = envelope.get("key") if isinstance(envelope.get("key"), dict) else {}
        message = envelope.get("message")

        # Echoes of our own sends, or protocol noise
        if key.get("fromMe") or not message:
            return False

        phone = phone_from_jid(key.get("remoteJid"))
        if not phone:
            return False

        content = parse_content(message)
        if isinstance(content, Unrecognized):
            logger.info("[Webhook] Unknown message type: %s", list(content.keys))
            return False

        body = content.body()
        if not body:
            return False

        logger.info("[Webhook] New message from %s: %s", phone, body[:50])

        conversation = conversation_store.resolve_for_inbound(
            self._db,
            company_id=target.company_id,
            phone=phone,
            instance_id=target.instance_id,
        )
        conversation_store.append_message(
            self._db,
            conversation_id=conversation.id,
            from_me=False,
            body=body,
        )
        return True


def summarise(result: IngestResult) -> Dict[str, Any]:
    return {
        "event": result.event_type,
        "handled": result.handled,
        "messages_stored": result.messages_stored,
        "skipped": result.skipped,
        "failed": result.failed,
    }
