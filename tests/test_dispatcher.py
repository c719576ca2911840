"""Tests for the dialogue session handler and dispatch."""
import asyncio

import pytest
from conftest import FakeTransport, make_event

from printdesk.core.exceptions import RecordExists, StateConflict, StoreUnavailable
from printdesk.flow.dispatcher import (
    DialogueSessionHandler,
    dispatch_event,
    dispatch_payload,
)
from printdesk.flow.menu import STATE_CONTENT
from printdesk.schemas.messenger import WebhookPayload
from printdesk.schemas.outbound import QuickReplyMessage, TextMessage
from printdesk.services.store import InMemoryConversationStore, StateWrite, WriteStatus
from printdesk.utils.constants import (
    ATTACHMENT_RECEIVED_MESSAGE,
    AUTHENTICATION_SUCCESS_MESSAGE,
    OPTIONS_PROMPT,
    STATUS_COMMAND,
    STATUS_MESSAGE,
    STORE_FAILURE_MESSAGE,
    UNMATCHED_INPUT_MESSAGE,
)

MAIN_OPTIONS = ["Sobre Impressão", "Reportar Problema", "Tirar Dúvida"]


class SpyStore(InMemoryConversationStore):
    def __init__(self, initial_state):
        super().__init__(initial_state)
        self.created = []
        self.writes = []

    async def create(self, external_id, display_name):
        self.created.append(external_id)
        return await super().create(external_id, display_name)

    async def update_state(self, external_id, new_state, expected_state):
        self.writes.append((external_id, new_state, expected_state))
        return await super().update_state(external_id, new_state, expected_state)


class FailingWriteStore(InMemoryConversationStore):
    def __init__(self, initial_state, status):
        super().__init__(initial_state)
        self.status = status

    async def update_state(self, external_id, new_state, expected_state):
        return StateWrite(self.status, detail="simulated")


class InterleavingStore(InMemoryConversationStore):
    """Holds every reader until `readers` sessions have read the record."""

    def __init__(self, initial_state, readers=2):
        super().__init__(initial_state)
        self.readers = readers
        self.reads = 0
        self.all_read = asyncio.Event()

    async def find(self, external_id):
        record = await super().find(external_id)
        self.reads += 1
        if self.reads >= self.readers:
            self.all_read.set()
        await self.all_read.wait()
        return record


class RacingCreateStore(InMemoryConversationStore):
    """Simulates another session inserting the user first."""

    async def create(self, external_id, display_name):
        await super().create(external_id, display_name)
        raise RecordExists()


def handler_for(store, engine, profile):
    return DialogueSessionHandler(store=store, engine=engine, profile_resolver=profile)


def assert_reply(messages, content, options):
    assert len(messages) == 2
    text, prompt = messages
    assert isinstance(text, TextMessage)
    assert text.body == content
    assert isinstance(prompt, QuickReplyMessage)
    assert prompt.body == OPTIONS_PROMPT
    assert prompt.labels == options


# ==============================================
# FIRST CONTACT
# ==============================================

@pytest.mark.asyncio
async def test_new_user_gets_greeting_without_decision(grammar, engine, profile):
    store = SpyStore(grammar.initial_state)
    handler = handler_for(store, engine, profile)

    messages = await handler.handle_inbound_event(make_event(token="Sobre Impressão"))

    assert_reply(messages, STATE_CONTENT["start"], MAIN_OPTIONS)
    assert store.created == ["user-1"]
    assert store.writes == []
    assert profile.calls == ["user-1"]
    record = await store.find("user-1")
    assert record.state_label == "start"
    assert record.display_name == "Ana Souza"


@pytest.mark.asyncio
async def test_concurrent_first_contact_rereads_record(grammar, engine, profile):
    store = RacingCreateStore(grammar.initial_state)
    handler = handler_for(store, engine, profile)

    messages = await handler.handle_inbound_event(make_event(token="oi"))

    assert_reply(messages, STATE_CONTENT["start"], MAIN_OPTIONS)


# ==============================================
# TRANSITIONS
# ==============================================

@pytest.mark.asyncio
async def test_walkthrough_persists_each_transition(session_handler, memory_store):
    await session_handler.handle_inbound_event(make_event(token="oi"))

    messages = await session_handler.handle_inbound_event(make_event(token="Sobre Impressão"))
    assert_reply(messages, STATE_CONTENT["print_1"], ["Próximo", "Recomeçar"])

    messages = await session_handler.handle_inbound_event(make_event(token="Próximo"))
    assert_reply(messages, STATE_CONTENT["print_2"], ["Próximo", "Recomeçar"])

    messages = await session_handler.handle_inbound_event(make_event(token="Recomeçar"))
    assert_reply(messages, STATE_CONTENT["start"], MAIN_OPTIONS)

    assert (await memory_store.find("user-1")).state_label == "start"
    assert [(h["from"], h["to"]) for h in memory_store.history("user-1")] == [
        ("start", "print_1"),
        ("print_1", "print_2"),
        ("print_2", "start"),
    ]


@pytest.mark.asyncio
async def test_unmatched_input_keeps_state(session_handler, memory_store):
    await memory_store.create("user-1", "Ana")
    await memory_store.update_state("user-1", "problem_1", expected_state="start")

    messages = await session_handler.handle_inbound_event(make_event(token="não sei"))

    assert_reply(messages, UNMATCHED_INPUT_MESSAGE, ["Impressora", "Sistema", "Recomeçar"])
    assert (await memory_store.find("user-1")).state_label == "problem_1"
    assert len(memory_store.history("user-1")) == 1


@pytest.mark.asyncio
async def test_attachment_is_acknowledged(session_handler, memory_store):
    await memory_store.create("user-1", "Ana")

    messages = await session_handler.handle_inbound_event(make_event(has_attachment=True))

    assert_reply(messages, ATTACHMENT_RECEIVED_MESSAGE, MAIN_OPTIONS)


@pytest.mark.asyncio
async def test_unknown_stored_state_restarts_from_initial(session_handler, memory_store):
    await memory_store.create("user-1", "Ana")
    await memory_store.update_state("user-1", "retired_state", expected_state="start")

    messages = await session_handler.handle_inbound_event(make_event(token="Tirar Dúvida"))

    assert_reply(messages, STATE_CONTENT["question_1"], ["Cota", "Horários", "Recomeçar"])
    assert (await memory_store.find("user-1")).state_label == "question_1"


@pytest.mark.asyncio
async def test_status_command_in_unknown_state_writes_nothing(grammar, engine, profile):
    store = SpyStore(grammar.initial_state)
    await store.create("user-1", "Ana")
    await store.update_state("user-1", "retired_state", expected_state="start")
    store.writes.clear()
    handler = handler_for(store, engine, profile)

    messages = await handler.handle_inbound_event(make_event(token=STATUS_COMMAND))

    assert messages[0].body == STATUS_MESSAGE.format(state="retired_state")
    assert store.writes == []
    assert (await store.find("user-1")).state_label == "retired_state"


# ==============================================
# DROPPED EVENTS
# ==============================================

@pytest.mark.asyncio
async def test_echo_is_dropped(grammar, engine, profile):
    store = SpyStore(grammar.initial_state)
    handler = handler_for(store, engine, profile)

    assert await handler.handle_inbound_event(make_event(token="hi", is_echo=True)) == []
    assert store.created == []


@pytest.mark.asyncio
async def test_empty_event_is_dropped(grammar, engine, profile):
    store = SpyStore(grammar.initial_state)
    handler = handler_for(store, engine, profile)

    assert await handler.handle_inbound_event(make_event()) == []
    assert store.created == []


# ==============================================
# STORE FAILURES
# ==============================================

@pytest.mark.asyncio
async def test_failed_write_is_surfaced(grammar, engine, profile):
    store = FailingWriteStore(grammar.initial_state, WriteStatus.UNAVAILABLE)
    await store.create("user-1", "Ana")
    handler = handler_for(store, engine, profile)

    with pytest.raises(StoreUnavailable):
        await handler.handle_inbound_event(make_event(token="Sobre Impressão"))


@pytest.mark.asyncio
async def test_unmatched_input_does_not_touch_a_failing_store(grammar, engine, profile):
    store = FailingWriteStore(grammar.initial_state, WriteStatus.UNAVAILABLE)
    await store.create("user-1", "Ana")
    handler = handler_for(store, engine, profile)

    messages = await handler.handle_inbound_event(make_event(token="???"))

    assert messages[0].body == UNMATCHED_INPUT_MESSAGE


@pytest.mark.asyncio
async def test_concurrent_sessions_for_same_user(grammar, engine, profile):
    store = InterleavingStore(grammar.initial_state)
    await store.create("user-1", "Ana")
    handler = handler_for(store, engine, profile)

    results = await asyncio.gather(
        handler.handle_inbound_event(make_event(token="Sobre Impressão")),
        handler.handle_inbound_event(make_event(token="Sobre Impressão")),
        return_exceptions=True,
    )

    conflicts = [r for r in results if isinstance(r, StateConflict)]
    replies = [r for r in results if isinstance(r, list)]
    assert len(conflicts) == 1
    assert len(replies) == 1
    assert replies[0][0].body == STATE_CONTENT["print_1"]
    assert conflicts[0].details["found_state"] == "print_1"
    assert len(store.history("user-1")) == 1


# ==============================================
# DISPATCH
# ==============================================

@pytest.mark.asyncio
async def test_dispatch_sends_content_before_options(session_handler, transport):
    result = await dispatch_event(make_event(token="oi"), session_handler, transport)

    assert result == {"status": "success", "sent": 2}
    assert [type(message) for _, message in transport.sent] == [TextMessage, QuickReplyMessage]
    assert all(recipient == "user-1" for recipient, _ in transport.sent)


@pytest.mark.asyncio
async def test_dispatch_reports_partial_delivery(session_handler):
    transport = FakeTransport(fail_after=1)

    result = await dispatch_event(make_event(token="oi"), session_handler, transport)

    assert result == {"status": "delivery_failed", "sent": 1}


@pytest.mark.asyncio
async def test_dispatch_conflict_sends_nothing(grammar, engine, profile, transport):
    store = FailingWriteStore(grammar.initial_state, WriteStatus.CONFLICT)
    await store.create("user-1", "Ana")
    handler = handler_for(store, engine, profile)

    result = await dispatch_event(make_event(token="Sobre Impressão"), handler, transport)

    assert result == {"status": "conflict"}
    assert transport.sent == []
    assert transport.texts == []


@pytest.mark.asyncio
async def test_dispatch_unavailable_notifies_user(grammar, engine, profile, transport):
    store = FailingWriteStore(grammar.initial_state, WriteStatus.UNAVAILABLE)
    await store.create("user-1", "Ana")
    handler = handler_for(store, engine, profile)

    result = await dispatch_event(make_event(token="Sobre Impressão"), handler, transport)

    assert result == {"status": "unavailable"}
    assert transport.sent == []
    assert transport.texts == [("user-1", STORE_FAILURE_MESSAGE)]


@pytest.mark.asyncio
async def test_dispatch_missing_record(grammar, engine, profile, transport):
    store = FailingWriteStore(grammar.initial_state, WriteStatus.NOT_FOUND)
    await store.create("user-1", "Ana")
    handler = handler_for(store, engine, profile)

    result = await dispatch_event(make_event(token="Sobre Impressão"), handler, transport)

    assert result == {"status": "not_found"}
    assert transport.sent == []


@pytest.mark.asyncio
async def test_dispatch_payload_handles_each_event(session_handler, transport):
    payload = WebhookPayload.model_validate({
        "object": "page",
        "entry": [{
            "id": "PAGE",
            "time": 1458692752478,
            "messaging": [
                {"sender": {"id": "user-1"}, "recipient": {"id": "PAGE"},
                 "timestamp": 1458692752478, "message": {"mid": "m1", "text": "oi"}},
                {"recipient": {"id": "PAGE"}, "message": {"mid": "m2", "text": "oi"}},
                {"sender": {"id": "user-2"}, "recipient": {"id": "PAGE"},
                 "optin": {"ref": "PASS_THROUGH"}},
                {"sender": {"id": "user-3"}, "recipient": {"id": "PAGE"},
                 "message": {"mid": "m3", "text": "eco", "is_echo": True}},
            ],
        }],
    })

    statuses = await dispatch_payload(payload, session_handler, transport)

    assert [s["status"] for s in statuses] == ["success", "malformed", "authenticated", "ignored"]
    assert transport.texts == [("user-2", AUTHENTICATION_SUCCESS_MESSAGE)]
    assert {recipient for recipient, _ in transport.sent} == {"user-1"}


@pytest.mark.asyncio
async def test_dispatch_payload_drops_events_that_fail_validation(session_handler, transport):
    payload = WebhookPayload.model_validate({
        "object": "page",
        "entry": [{
            "id": "PAGE",
            "messaging": [
                {"sender": {"id": "user-2"}, "message": {"mid": "m1", "quick_reply": {}}},
                "not an event",
                {"sender": {"id": "user-1"}, "message": {"mid": "m2", "text": "oi"}},
            ],
        }],
    })

    statuses = await dispatch_payload(payload, session_handler, transport)

    assert [s["status"] for s in statuses] == ["malformed", "malformed", "success"]
    assert {recipient for recipient, _ in transport.sent} == {"user-1"}
