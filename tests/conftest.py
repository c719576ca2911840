"""Pytest configuration and fixtures."""
import os

# Set test environment before importing the app
os.environ["ENVIRONMENT"] = "test"
os.environ["STORE_BACKEND"] = "memory"
os.environ["MESSENGER_VALIDATION_TOKEN"] = "verify-token"
os.environ["MESSENGER_APP_SECRET"] = "app-secret"
os.environ["MESSENGER_PAGE_ACCESS_TOKEN"] = "page-token"

import pytest

from printdesk.flow.dispatcher import DialogueSessionHandler
from printdesk.flow.engine import ConversationEngine
from printdesk.flow.menu import build_menu_grammar
from printdesk.schemas.messenger import InboundEvent
from printdesk.services.store import InMemoryConversationStore


class FakeProfileService:
    """Profile resolver that records lookups."""

    def __init__(self, name="Ana Souza"):
        self.name = name
        self.calls = []

    async def resolve(self, external_id):
        self.calls.append(external_id)
        return self.name


class FakeTransport:
    """Send API stand-in that records what would be delivered."""

    def __init__(self, fail_after=None):
        self.sent = []
        self.texts = []
        self.fail_after = fail_after

    async def send_messages(self, recipient_id, messages):
        results = []
        for message in messages:
            if self.fail_after is not None and len(self.sent) >= self.fail_after:
                results.append({"success": False, "error": "boom"})
                break
            self.sent.append((recipient_id, message))
            results.append({"success": True, "message_id": f"mid.{len(self.sent)}"})
        return results

    async def send_text(self, recipient_id, text):
        self.texts.append((recipient_id, text))
        return {"success": True}

    def is_configured(self):
        return True


def make_event(external_id="user-1", token=None, **kwargs):
    return InboundEvent(external_id=external_id, input_token=token, **kwargs)


@pytest.fixture
def grammar():
    return build_menu_grammar()


@pytest.fixture
def engine(grammar):
    return ConversationEngine(grammar)


@pytest.fixture
def memory_store(grammar):
    return InMemoryConversationStore(grammar.initial_state)


@pytest.fixture
def profile():
    return FakeProfileService()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def session_handler(memory_store, engine, profile):
    return DialogueSessionHandler(
        store=memory_store,
        engine=engine,
        profile_resolver=profile,
    )
