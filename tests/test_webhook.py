"""Tests for the Messenger webhook endpoint."""
import hashlib
import hmac
import json

import pytest
from fastapi.testclient import TestClient

from printdesk.api.webhook import verify_signature
from printdesk.core.exceptions import AuthenticationError
from printdesk.flow.menu import STATE_CONTENT
from printdesk.main import app

APP_SECRET = "app-secret"


def sign(body: bytes, secret: str = APP_SECRET) -> str:
    return "sha1=" + hmac.new(secret.encode("utf-8"), body, hashlib.sha1).hexdigest()


def delivery(*messaging) -> bytes:
    return json.dumps({
        "object": "page",
        "entry": [{"id": "PAGE", "time": 1458692752478, "messaging": list(messaging)}],
    }).encode("utf-8")


def message_event(text=None, quick_reply=None, sender="user-1"):
    message = {"mid": "mid.1"}
    if text is not None:
        message["text"] = text
    if quick_reply is not None:
        message["quick_reply"] = {"payload": quick_reply}
    return {
        "sender": {"id": sender},
        "recipient": {"id": "PAGE"},
        "timestamp": 1458692752478,
        "message": message,
    }


@pytest.fixture
def client(session_handler, transport):
    app.state.session_handler = session_handler
    app.state.transport = transport
    yield TestClient(app)
    del app.state.session_handler
    del app.state.transport


def post(client, body: bytes, signature=None):
    headers = {"Content-Type": "application/json"}
    if signature is not None:
        headers["X-Hub-Signature"] = signature
    return client.post("/webhook", content=body, headers=headers)


# ==============================================
# VERIFICATION HANDSHAKE
# ==============================================

def test_verification_echoes_challenge(client):
    response = client.get(
        "/webhook",
        params={"hub.mode": "subscribe", "hub.verify_token": "verify-token", "hub.challenge": "1158201444"},
    )

    assert response.status_code == 200
    assert response.text == "1158201444"


def test_verification_with_wrong_token_is_forbidden(client):
    response = client.get(
        "/webhook",
        params={"hub.mode": "subscribe", "hub.verify_token": "nope", "hub.challenge": "1"},
    )

    assert response.status_code == 403
    assert response.json()["code"] == "AUTHENTICATION_FAILED"


# ==============================================
# SIGNATURE
# ==============================================

def test_verify_signature_accepts_matching_digest():
    body = b'{"object": "page"}'
    assert verify_signature(body, sign(body), APP_SECRET) is True


def test_verify_signature_rejects_mismatch():
    with pytest.raises(AuthenticationError):
        verify_signature(b"{}", sign(b"other"), APP_SECRET)


def test_verify_signature_tolerates_missing_header():
    assert verify_signature(b"{}", None, APP_SECRET) is False


def test_post_with_bad_signature_is_forbidden(client, transport):
    body = delivery(message_event(text="oi"))

    response = post(client, body, signature=sign(b"tampered"))

    assert response.status_code == 403
    assert transport.sent == []


# ==============================================
# DELIVERIES
# ==============================================

def test_first_message_gets_greeting(client, transport):
    body = delivery(message_event(text="oi"))

    response = post(client, body, signature=sign(body))

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "events": 1}
    text, prompt = [message for _, message in transport.sent]
    assert text.body == STATE_CONTENT["start"]
    assert prompt.labels == ["Sobre Impressão", "Reportar Problema", "Tirar Dúvida"]


def test_quick_reply_payload_drives_transition(client, transport, memory_store):
    first = delivery(message_event(text="oi"))
    post(client, first, signature=sign(first))

    second = delivery(message_event(text="Sobre Impressão", quick_reply="Sobre Impressão"))
    response = post(client, second, signature=sign(second))

    assert response.status_code == 200
    assert transport.sent[-2][1].body == STATE_CONTENT["print_1"]
    assert transport.sent[-1][1].labels == ["Próximo", "Recomeçar"]


def test_missing_signature_is_processed(client, transport):
    body = delivery(message_event(text="oi"))

    response = post(client, body)

    assert response.status_code == 200
    assert len(transport.sent) == 2


def test_non_page_object_is_rejected(client):
    body = json.dumps({"object": "instagram", "entry": []}).encode("utf-8")

    response = post(client, body, signature=sign(body))

    assert response.status_code == 404


def test_invalid_payload_is_rejected(client):
    body = b"not json"

    response = post(client, body, signature=sign(body))

    assert response.status_code == 400
    assert response.json()["code"] == "HTTP_ERROR"


def test_post_before_startup_is_unavailable():
    body = delivery(message_event(text="oi"))

    response = post(TestClient(app), body, signature=sign(body))

    assert response.status_code == 503


# ==============================================
# HEALTH
# ==============================================

def test_liveness(client):
    assert client.get("/live").json() == {"status": "alive"}


def test_health_with_memory_store(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["checks"] == {"database": "memory", "session_handler": "ready"}


def test_bad_event_does_not_block_the_rest_of_the_delivery(client, transport):
    bad = {
        "sender": {"id": "user-bad"},
        "recipient": {"id": "PAGE"},
        "message": {"mid": "mid.2", "quick_reply": {}},
    }
    body = delivery(message_event(text="oi", sender="user-good"), bad)

    response = post(client, body, signature=sign(body))

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "events": 2}
    assert {recipient for recipient, _ in transport.sent} == {"user-good"}
    assert transport.sent[0][1].body == STATE_CONTENT["start"]
