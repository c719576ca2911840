"""
printdesk/api/webhook.py

Purpose: Messenger webhook endpoint

- GET: subscription verification handshake
- POST: verifies the X-Hub-Signature, parses the delivery and hands every
  messaging event to the dispatcher
- Always answers 200 quickly for valid page deliveries
"""

import hashlib
import hmac
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from printdesk.core.config import settings
from printdesk.core.exceptions import AuthenticationError
from printdesk.core.logging import get_logger
from printdesk.flow.dispatcher import DialogueSessionHandler, dispatch_payload
from printdesk.schemas.messenger import WebhookPayload
from printdesk.schemas.response import WebhookAck
from printdesk.services.messenger_service import MessengerService

logger = get_logger(__name__)
router = APIRouter()


def get_session_handler(request: Request) -> DialogueSessionHandler:
    handler = getattr(request.app.state, "session_handler", None)
    if handler is None:
        raise HTTPException(status_code=503, detail="Session handler not initialized")
    return handler


def get_transport(request: Request) -> MessengerService:
    transport = getattr(request.app.state, "transport", None)
    if transport is None:
        raise HTTPException(status_code=503, detail="Transport not initialized")
    return transport


def verify_signature(body: bytes, signature: Optional[str], app_secret: Optional[str]) -> bool:
    """
    Checks an X-Hub-Signature header ("sha1=<hex digest>") against the body.

    A missing header is logged and tolerated; a mismatching one is rejected.

    Raises:
        AuthenticationError: If the signature does not match
    """
    if not signature:
        logger.error("Couldn't validate the signature: header missing")
        return False

    if not app_secret:
        logger.warning("MESSENGER_APP_SECRET not set, signature not checked")
        return False

    method, _, signature_hash = signature.partition("=")
    if method != "sha1" or not signature_hash:
        raise AuthenticationError("Unsupported request signature format")

    expected_hash = hmac.new(app_secret.encode("utf-8"), body, hashlib.sha1).hexdigest()

    if not hmac.compare_digest(signature_hash.encode("utf-8"), expected_hash.encode("utf-8")):
        raise AuthenticationError("Couldn't validate the request signature.")

    return True


@router.get("/webhook", response_class=PlainTextResponse)
async def webhook_verification(
    hub_mode: Optional[str] = Query(None, alias="hub.mode"),
    hub_verify_token: Optional[str] = Query(None, alias="hub.verify_token"),
    hub_challenge: Optional[str] = Query(None, alias="hub.challenge"),
):
    """
    Messenger subscription handshake: echo the challenge when the token matches.
    """
    if (
        hub_mode == "subscribe"
        and settings.MESSENGER_VALIDATION_TOKEN
        and hub_verify_token == settings.MESSENGER_VALIDATION_TOKEN
    ):
        logger.info("Validating webhook")
        return PlainTextResponse(hub_challenge or "")

    logger.error("Failed validation. Make sure the validation tokens match.")
    raise AuthenticationError("Webhook verification failed")


@router.post("/webhook", response_model=WebhookAck)
async def webhook_handler(
    request: Request,
    handler: DialogueSessionHandler = Depends(get_session_handler),
    transport: MessengerService = Depends(get_transport),
):
    """
    Receives Messenger callbacks. Deliveries may batch several entries and
    several messaging events per entry.
    """
    body = await request.body()
    verify_signature(body, request.headers.get("x-hub-signature"), settings.MESSENGER_APP_SECRET)

    try:
        payload = WebhookPayload.model_validate_json(body)
    except ValidationError as e:
        logger.error(f"Failed to parse webhook payload: {e.error_count()} errors")
        raise HTTPException(status_code=400, detail="Invalid webhook payload")

    if not payload.is_page_subscription:
        logger.warning(f"Ignoring webhook for object '{payload.object}'")
        raise HTTPException(status_code=404, detail="Unsupported webhook object")

    statuses = await dispatch_payload(payload, handler, transport)
    logger.info(f"Webhook processed {len(statuses)} events")

    return WebhookAck(events=len(statuses))
