"""
printdesk/flow/dispatcher.py

Purpose: Central message dispatcher

- Receives normalized events from the webhook
- Resolves or creates the user, asks the engine for a decision
- Persists the transition before anything is reported to the user
- Sends the replies via the Messenger Send API
"""

import asyncio
from typing import Any, Dict, List

from printdesk.core.exceptions import (
    MalformedEvent,
    PrintDeskError,
    RecordExists,
    RecordNotFound,
    StateConflict,
    StoreUnavailable,
)
from printdesk.core.config import settings
from printdesk.core.logging import get_logger, LogContext
from printdesk.flow.engine import ConversationEngine, Decision, DecisionOutcome
from printdesk.models.user import UserRecord
from printdesk.schemas.messenger import (
    InboundEvent,
    WebhookPayload,
    load_messaging_event,
    parse_messaging_event,
)
from printdesk.schemas.outbound import OutboundMessage, QuickReplyMessage, TextMessage
from printdesk.services.messenger_service import MessengerService
from printdesk.services.profile_service import ProfileService
from printdesk.services.store import ConversationStore, StateWrite, WriteStatus
from printdesk.utils.constants import (
    AUTHENTICATION_SUCCESS_MESSAGE,
    OPTIONS_PROMPT,
    STORE_FAILURE_MESSAGE,
)

logger = get_logger(__name__)


class DialogueSessionHandler:
    """
    Runs one inbound event through read -> decide -> write -> reply.
    """

    def __init__(
        self,
        store: ConversationStore,
        engine: ConversationEngine,
        profile_resolver: ProfileService,
        options_prompt: str = OPTIONS_PROMPT
    ):
        self.store = store
        self.engine = engine
        self.profile_resolver = profile_resolver
        self.options_prompt = options_prompt

    async def handle_inbound_event(self, event: InboundEvent) -> List[OutboundMessage]:
        """
        Handles one user turn.

        Args:
            event: Normalized inbound event

        Returns:
            Messages to send, content first and option prompt second;
            empty when the event is dropped

        Raises:
            StoreUnavailable: The store could not be read or written
            StateConflict: Another session changed the state first
            RecordNotFound: The record disappeared before the write
        """
        with LogContext(external_id=event.external_id):
            if event.is_echo:
                logger.debug(f"Echo for message {event.message_id} ignored")
                return []

            if event.is_empty:
                logger.info("Event without text, payload or attachment dropped")
                return []

            record = await self.store.find(event.external_id)

            if record is None:
                record = await self._register(event.external_id)
                logger.info(f"First contact from {record.display_name}")
                return self.render(self.engine.greet())

            decision = self._decide(record, event)

            if decision.outcome != DecisionOutcome.COMMAND and (
                decision.transitioned or decision.next_state != record.state_label
            ):
                write = await self.store.update_state(
                    event.external_id,
                    decision.next_state,
                    expected_state=record.state_label
                )
                self._raise_for_write(write, record, decision)
            else:
                logger.info(f"No transition ({decision.outcome.value}) in '{record.state_label}'")

            return self.render(decision)

    def render(self, decision: Decision) -> List[OutboundMessage]:
        messages: List[OutboundMessage] = [TextMessage(body=decision.content)]
        if decision.offered_options:
            messages.append(
                QuickReplyMessage.from_labels(self.options_prompt, decision.offered_options)
            )
        return messages

    async def _register(self, external_id: str) -> UserRecord:
        display_name = await self.profile_resolver.resolve(external_id)

        try:
            return await self.store.create(external_id, display_name)
        except RecordExists:
            # Another event for the same new user won the insert
            record = await self.store.find(external_id)
            if record is None:
                raise RecordNotFound(details={"external_id": external_id})
            return record

    def _decide(self, record: UserRecord, event: InboundEvent) -> Decision:
        state = record.state_label
        grammar = self.engine.grammar

        if event.input_token in self.engine.special_commands:
            # Commands report the stored label as-is, known to the menu or not
            return self.engine.decide(state, event.input_token)

        if not grammar.has_state(state):
            logger.warning(
                f"Stored state '{state}' is unknown, using '{grammar.initial_state}'"
            )
            state = grammar.initial_state

        if event.input_token:
            return self.engine.decide(state, event.input_token)
        return self.engine.acknowledge_attachment(state)

    def _raise_for_write(self, write: StateWrite, record: UserRecord, decision: Decision):
        if write.status == WriteStatus.OK:
            return

        details = {
            "external_id": record.external_id,
            "expected_state": record.state_label,
            "next_state": decision.next_state,
        }

        if write.status == WriteStatus.CONFLICT:
            raise StateConflict(details={**details, "found_state": write.state})
        if write.status == WriteStatus.NOT_FOUND:
            raise RecordNotFound(details=details)
        raise StoreUnavailable(details={**details, "error": write.detail})


async def dispatch_event(
    event: InboundEvent,
    handler: DialogueSessionHandler,
    transport: MessengerService
) -> Dict[str, Any]:
    """
    Handles one event and delivers the replies.

    Returns:
        Status dict for logging/tests
    """
    try:
        messages = await handler.handle_inbound_event(event)

    except StateConflict as e:
        logger.warning(f"⚠️ Session for {event.external_id} aborted: {e.message} {e.details}")
        return {"status": "conflict"}

    except StoreUnavailable as e:
        logger.error(f"❌ Store unavailable for {event.external_id}: {e.details}")
        if settings.NOTIFY_ON_STORE_FAILURE:
            await transport.send_text(event.external_id, STORE_FAILURE_MESSAGE)
        return {"status": "unavailable"}

    except RecordNotFound as e:
        logger.error(f"❌ Record vanished for {event.external_id}: {e.details}")
        return {"status": "not_found"}

    if not messages:
        return {"status": "ignored"}

    results = await transport.send_messages(event.external_id, messages)
    sent = sum(1 for result in results if result["success"])

    if sent < len(messages):
        return {"status": "delivery_failed", "sent": sent}
    return {"status": "success", "sent": sent}


async def dispatch_messaging_event(
    raw: Any,
    handler: DialogueSessionHandler,
    transport: MessengerService
) -> Dict[str, Any]:
    """
    Validates and handles one raw messaging event of a delivery.
    """
    try:
        event = load_messaging_event(raw)
    except MalformedEvent as e:
        logger.warning(f"Dropping malformed event: {e.message} {e.details or ''}")
        return {"status": "malformed"}

    if event.optin is not None and event.sender.id:
        logger.info(
            f"Received authentication for user {event.sender.id} "
            f"with pass through param '{event.optin.ref}'"
        )
        await transport.send_text(event.sender.id, AUTHENTICATION_SUCCESS_MESSAGE)
        return {"status": "authenticated"}

    try:
        inbound = parse_messaging_event(event)
    except MalformedEvent as e:
        logger.warning(f"Dropping malformed event: {e.message} {e.details or ''}")
        return {"status": "malformed"}

    return await dispatch_event(inbound, handler, transport)


async def dispatch_payload(
    payload: WebhookPayload,
    handler: DialogueSessionHandler,
    transport: MessengerService
) -> List[Dict[str, Any]]:
    """
    Dispatches every messaging event of a webhook delivery concurrently.
    One failing event never prevents the others from being handled.
    """
    events = payload.events()
    if not events:
        return []

    results = await asyncio.gather(
        *(dispatch_messaging_event(event, handler, transport) for event in events),
        return_exceptions=True
    )

    statuses: List[Dict[str, Any]] = []
    for index, result in enumerate(results):
        if isinstance(result, BaseException):
            logger.error(
                f"❌ Dispatcher error for event {index}: {result}",
                exc_info=(type(result), result, result.__traceback__)
            )
            code = result.code if isinstance(result, PrintDeskError) else "INTERNAL_ERROR"
            statuses.append({"status": "error", "code": code})
        else:
            statuses.append(result)

    return statuses
