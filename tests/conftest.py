"""
Shared fixtures.

No real API calls in tests: the Gemini model is replaced by a fake that
replays canned responses.
"""

import asyncio
from datetime import datetime
from decimal import Decimal

import pytest

from r2r.agents import GeminiGateway
from r2r.config import AppSettings, GeminiSettings, Settings
from r2r.models.finance import Transaction, TransactionCategory
from r2r.orchestrator import create_app_components
from r2r.services import InMemoryKeyValueClient


SLOW = object()


class FakeResponse:
    def __init__(self, text):
        self._text = text

    @property
    def text(self):
        if isinstance(self._text, Exception):
            raise self._text
        return self._text


class FakeChatSession:
    def __init__(self, replies):
        self.replies = replies
        self.sent = []

    async def send_message_async(self, message):
        self.sent.append(message)
        reply = self.replies.pop(0) if self.replies else ""
        if isinstance(reply, Exception):
            raise reply
        return FakeResponse(reply)


class FakeGenerativeModel:
    """
    Stands in for google.generativeai.GenerativeModel.

    Each queued response is returned as response text; an Exception is
    raised instead, and SLOW never finishes within a test timeout.
    """

    def __init__(self):
        self.responses = []
        self.chat_replies = []
        self.calls = []
        self.factory_calls = []
        self.chat_sessions = []

    def queue(self, *responses):
        self.responses.extend(responses)

    async def generate_content_async(self, contents):
        self.calls.append(contents)
        response = self.responses.pop(0) if self.responses else "[]"
        if response is SLOW:
            await asyncio.sleep(10)
        if isinstance(response, Exception):
            raise response
        return FakeResponse(response)

    def start_chat(self, history=None):
        session = FakeChatSession(self.chat_replies)
        self.chat_sessions.append(session)
        return session

    def __call__(self, model_name, json_output=True, system_instruction=None):
        self.factory_calls.append({
            "model_name": model_name,
            "json_output": json_output,
            "system_instruction": system_instruction,
        })
        return self


@pytest.fixture
def fake_model():
    return FakeGenerativeModel()


@pytest.fixture
def gemini_settings():
    return GeminiSettings(api_key="test-key", max_retries=1, request_timeout_seconds=0.2)


@pytest.fixture
def app_settings():
    return AppSettings()


@pytest.fixture
def gateway(fake_model, gemini_settings, app_settings):
    return GeminiGateway(gemini_settings, app_settings, model_factory=fake_model)


@pytest.fixture
def client():
    return InMemoryKeyValueClient()


@pytest.fixture
def components(gateway, client):
    return create_app_components(settings=Settings(), gateway=gateway, client=client)


@pytest.fixture
def make_transaction():
    """Build a Transaction with sensible defaults."""

    def _make(
        amount="10.00",
        category=TransactionCategory.GROCERIES,
        occurred_at=datetime(2025, 3, 10, 12, 0),
        **overrides,
    ):
        fields = {
            "user_id": "u1",
            "merchant": "Corner Shop",
            "amount": Decimal(amount),
            "category": category,
            "occurred_at": occurred_at,
        }
        fields.update(overrides)
        return Transaction(**fields)

    return _make
