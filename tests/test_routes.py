"""HTTP surface: auth, command proxy route, webhook route, admin routes."""
import uuid
from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from app import config
from app.db import get_db
from app.errors import GatewayError
from app.evolution.factory import get_evolution_client
from app.main import app
from app.models import Conversation, Message, Profile, WhatsAppInstance

SECRET = "test-jwt-secret"


@pytest.fixture
def client(test_db, gateway, monkeypatch):
    monkeypatch.setenv("AUTH_JWT_SECRET", SECRET)
    monkeypatch.delenv("AUTH_JWT_AUDIENCE", raising=False)
    config.load_auth_settings.cache_clear()

    def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_evolution_client] = lambda: gateway

    yield TestClient(app)

    app.dependency_overrides.clear()
    config.load_auth_settings.cache_clear()


def _token(user_id):
    return jwt.encode({"sub": str(user_id), "email": "agent@acme.test"}, SECRET, algorithm="HS256")


@pytest.fixture
def auth_headers(profile):
    return {"Authorization": f"Bearer {_token(profile.id)}"}


# -------------------------------------------------------------------
# Auth / tenant resolution
# -------------------------------------------------------------------
def test_command_requires_authorization_header(client):
    resp = client.post("/functions/evolution-api", json={"action": "status", "instanceName": "acme"})

    assert resp.status_code == 401
    assert resp.json() == {"error": "Missing authorization header"}


def test_command_rejects_bad_token(client):
    resp = client.post(
        "/functions/evolution-api",
        json={"action": "status", "instanceName": "acme"},
        headers={"Authorization": "Bearer not-a-jwt"},
    )

    assert resp.status_code == 401
    assert resp.json() == {"error": "Unauthorized"}


def test_command_rejects_user_without_company(client, test_db):
    orphan = Profile(id=uuid.uuid4(), company_id=None)
    test_db.add(orphan)
    test_db.commit()

    resp = client.post(
        "/functions/evolution-api",
        json={"action": "status", "instanceName": "acme"},
        headers={"Authorization": f"Bearer {_token(orphan.id)}"},
    )

    assert resp.status_code == 401
    assert resp.json() == {"error": "User has no company"}


# -------------------------------------------------------------------
# Command proxy route
# -------------------------------------------------------------------
def test_create_route(client, gateway, auth_headers, test_db, company):
    gateway.create_instance.return_value = {"instance": {"instanceName": "loja"}}

    resp = client.post("/functions/evolution-api", json={"action": "create", "instanceName": "loja"}, headers=auth_headers)

    assert resp.status_code == 200
    body = resp.json()
    assert body["instance"]["instance_name"] == "loja"
    assert body["instance"]["status"] == "disconnected"
    assert test_db.query(WhatsAppInstance).one().company_id == company.id


def test_status_route(client, gateway, auth_headers, test_db, instance):
    gateway.connection_state.return_value = {"instance": {"instanceName": "acme-main", "state": "open"}}

    resp = client.post(
        "/functions/evolution-api",
        json={"action": "status", "instanceName": instance.instance_name, "instanceId": str(instance.id)},
        headers=auth_headers,
    )

    assert resp.status_code == 200
    assert resp.json()["status"] == "connected"
    test_db.refresh(instance)
    assert instance.status == "connected"


def test_missing_instance_name_is_400(client, auth_headers):
    resp = client.post("/functions/evolution-api", json={"action": "connect"}, headers=auth_headers)

    assert resp.status_code == 400
    assert resp.json() == {"error": "Instance name required"}


def test_unknown_action_is_400(client, auth_headers):
    resp = client.post("/functions/evolution-api", json={"action": "reboot", "instanceName": "x"}, headers=auth_headers)

    assert resp.status_code == 400
    assert resp.json() == {"error": "Unknown action: reboot"}


def test_gateway_error_is_surfaced(client, gateway, auth_headers):
    gateway.connect.side_effect = GatewayError("instance busy", status_code=500)

    resp = client.post("/functions/evolution-api", json={"action": "qrcode", "instanceName": "acme"}, headers=auth_headers)

    assert resp.status_code == 502
    assert resp.json() == {"error": "instance busy"}


def test_send_route_records_message(client, gateway, auth_headers, test_db, company, instance):
    conversation = Conversation(company_id=company.id, phone="5511999998888", instance_id=instance.id)
    test_db.add(conversation)
    test_db.commit()
    gateway.send_text.return_value = {"key": {"id": "ABC"}}

    resp = client.post(
        "/functions/evolution-api",
        json={
            "action": "send",
            "instanceName": instance.instance_name,
            "phone": "+55 11 99999-8888",
            "message": "Olá!",
            "conversationId": str(conversation.id),
        },
        headers=auth_headers,
    )

    assert resp.status_code == 200
    assert resp.json()["recorded"] is True
    message = test_db.query(Message).one()
    assert message.from_me is True
    assert message.body == "Olá!"



def test_send_route_reports_unrecorded_send_when_store_is_down(client, gateway, auth_headers, test_db, company, instance):
    conversation = Conversation(company_id=company.id, phone="5511", instance_id=instance.id)
    test_db.add(conversation)
    test_db.commit()
    conversation_id = str(conversation.id)
    Message.__table__.drop(test_db.get_bind())
    Conversation.__table__.drop(test_db.get_bind())

    resp = client.post(
        "/functions/evolution-api",
        json={
            "action": "send",
            "instanceName": instance.instance_name,
            "phone": "5511",
            "message": "oi",
            "conversationId": conversation_id,
        },
        headers=auth_headers,
    )

    assert resp.status_code == 200
    assert resp.json()["recorded"] is False
    gateway.send_text.assert_called_once()


def test_status_route_store_failure_is_json_500(client, gateway, auth_headers, test_db, instance):
    instance_id = str(instance.id)
    test_db.commit()
    WhatsAppInstance.__table__.drop(test_db.get_bind())
    gateway.connection_state.return_value = {"instance": {"state": "open"}}

    resp = client.post(
        "/functions/evolution-api",
        json={"action": "status", "instanceName": "acme-main", "instanceId": instance_id},
        headers=auth_headers,
    )

    assert resp.status_code == 500
    assert resp.json()["error"].startswith("Could not update instance status")

# -------------------------------------------------------------------
# Webhook route
# -------------------------------------------------------------------
def test_webhook_message_upsert(client, test_db, instance):
    payload = {
        "event": "messages.upsert",
        "instance": instance.instance_name,
        "data": {
            "key": {"remoteJid": "5511999998888@s.whatsapp.net", "fromMe": False},
            "message": {"conversation": "Olá"},
        },
    }

    resp = client.post("/webhooks/evolution", json=payload)

    assert resp.status_code == 200
    assert resp.json() == {"received": True}
    assert test_db.query(Message).one().body == "Olá"


def test_webhook_connection_update(client, test_db, instance):
    resp = client.post(
        "/webhooks/evolution",
        json={"event": "CONNECTION_UPDATE", "instance": instance.instance_name, "data": {"state": "open"}},
    )

    assert resp.status_code == 200
    test_db.refresh(instance)
    assert instance.status == "connected"


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"event": "messages.upsert"},
        {"event": "messages.upsert", "instance": "ghost", "data": {}},
        {"event": "messages.update", "instance": "acme-main", "data": {}},
    ],
)
def test_webhook_acknowledges_business_misses(client, instance, payload):
    resp = client.post("/webhooks/evolution", json=payload)

    assert resp.status_code == 200
    assert resp.json() == {"received": True}


def test_webhook_unparseable_body_is_500(client):
    resp = client.post(
        "/webhooks/evolution",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )

    assert resp.status_code == 500
    assert "error" in resp.json()


def test_webhook_needs_no_auth(client, instance):
    resp = client.post(
        "/webhooks/evolution",
        json={"event": "connection.update", "instance": instance.instance_name, "data": {"state": "close"}},
    )
    assert resp.status_code == 200


# -------------------------------------------------------------------
# Admin routes
# -------------------------------------------------------------------
def test_admin_lists_only_own_instances(client, auth_headers, test_db, instance, other_company):
    test_db.add(WhatsAppInstance(company_id=other_company.id, instance_name="other-main"))
    test_db.commit()

    resp = client.get("/admin/instances", headers=auth_headers)

    assert resp.status_code == 200
    assert [i["instance_name"] for i in resp.json()] == ["acme-main"]


def test_admin_rename_is_local_only(client, auth_headers, test_db, instance):
    resp = client.patch(
        f"/admin/instances/{instance.id}",
        json={"instanceName": "acme-renamed"},
        headers=auth_headers,
    )

    assert resp.status_code == 200
    assert resp.json()["gateway_renamed"] is False
    assert resp.json()["instance"]["instance_name"] == "acme-renamed"


def test_admin_conversation_status_toggle_and_messages(client, auth_headers, test_db, company, instance):
    conversation = Conversation(company_id=company.id, phone="5511", instance_id=instance.id)
    test_db.add(conversation)
    test_db.commit()
    test_db.add_all(
        [
            Message(conversation_id=conversation.id, from_me=False, body="oi", created_at=datetime(2026, 1, 5, 12, 0, 0)),
            Message(
                conversation_id=conversation.id,
                from_me=True,
                body="olá, em que posso ajudar?",
                created_at=datetime(2026, 1, 5, 12, 0, 30),
            ),
        ]
    )
    test_db.commit()

    closed = client.post(
        f"/admin/conversations/{conversation.id}/status",
        json={"status": "closed"},
        headers=auth_headers,
    )
    listed = client.get("/admin/conversations", params={"status": "closed"}, headers=auth_headers)
    history = client.get(f"/admin/conversations/{conversation.id}/messages", headers=auth_headers)

    assert closed.status_code == 200
    assert closed.json()["status"] == "closed"
    assert [c["id"] for c in listed.json()] == [str(conversation.id)]
    assert [m["body"] for m in history.json()] == ["oi", "olá, em que posso ajudar?"]


def test_admin_invalid_conversation_status(client, auth_headers, test_db, company):
    conversation = Conversation(company_id=company.id, phone="5511")
    test_db.add(conversation)
    test_db.commit()

    resp = client.post(
        f"/admin/conversations/{conversation.id}/status",
        json={"status": "archived"},
        headers=auth_headers,
    )

    assert resp.status_code == 400


def test_admin_other_tenant_conversation_is_404(client, auth_headers, test_db, other_company):
    conversation = Conversation(company_id=other_company.id, phone="5511")
    test_db.add(conversation)
    test_db.commit()

    resp = client.get(f"/admin/conversations/{conversation.id}/messages", headers=auth_headers)

    assert resp.status_code == 404
    assert resp.json() == {"error": "Conversation not found"}


def test_admin_instances_store_failure_is_json_500(client, auth_headers, test_db, instance):
    test_db.commit()
    WhatsAppInstance.__table__.drop(test_db.get_bind())

    resp = client.get("/admin/instances", headers=auth_headers)

    assert resp.status_code == 500
    assert resp.json()["error"].startswith("Could not load instances")


def test_admin_summary_counts_own_company_only(client, auth_headers, test_db, company, other_company, instance):
    test_db.add_all(
        [
            WhatsAppInstance(company_id=company.id, instance_name="acme-second", status="connected"),
            WhatsAppInstance(company_id=other_company.id, instance_name="other-main", status="connected"),
            Conversation(company_id=company.id, phone="5511", status="open"),
            Conversation(company_id=company.id, phone="5522", status="closed"),
            Conversation(company_id=other_company.id, phone="5533", status="open"),
            Profile(id=uuid.uuid4(), company_id=company.id, full_name="Second Agent"),
            Profile(id=uuid.uuid4(), company_id=other_company.id, full_name="Someone Else"),
        ]
    )
    test_db.commit()

    resp = client.get("/admin/summary", headers=auth_headers)

    assert resp.status_code == 200
    assert resp.json() == {
        "total_conversations": 2,
        "open_conversations": 1,
        "total_instances": 2,
        "connected_instances": 1,
        "total_users": 2,
    }


def test_admin_summary_unhandled_database_error_is_json_500(client, auth_headers, test_db, company):
    test_db.commit()
    Message.__table__.drop(test_db.get_bind())
    Conversation.__table__.drop(test_db.get_bind())

    resp = client.get("/admin/summary", headers=auth_headers)

    assert resp.status_code == 500
    assert resp.json() == {"error": "Database error"}
