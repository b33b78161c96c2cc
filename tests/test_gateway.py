"""Tests for the Gemini gateway and chat, with a fake model."""

import asyncio
import json
from datetime import date, datetime
from decimal import Decimal

import pytest
from google.api_core import exceptions as google_exceptions

from r2r.agents import FinancialChat, GeminiGateway
from r2r.agents.chat import CONNECTION_LOST_REPLY, EMPTY_REPLY, GREETING
from r2r.agents.gateway import ResponseParseError, load_json_payload
from r2r.config import GeminiSettings
from r2r.models.finance import BillFrequency, ImageUpload, Insights, SourceType

from conftest import SLOW


PREDICTIONS = json.dumps([
    {
        "merchant": "Netflix",
        "estimatedAmount": 15.99,
        "frequency": "monthly",
        "nextExpectedDate": "2025-04-02",
        "confidence": 0.92,
        "isSubscription": True,
    },
])

INSIGHTS = json.dumps({
    "leaks": [{"title": "Late-night delivery", "description": "4x a week", "amount": 120}],
    "suggestions": [
        {"action": "Cook on weekdays", "rationale": "Cheaper", "estimatedMonthlySaving": 80}
    ],
})


class TestLoadJsonPayload:
    def test_plain_json(self):
        assert load_json_payload('[{"a": 1}]') == [{"a": 1}]

    def test_fenced_json(self):
        text = 'Here you go:\n```json\n[{"a": 1}]\n```'
        assert load_json_payload(text) == [{"a": 1}]

    def test_no_json(self):
        with pytest.raises(ResponseParseError):
            load_json_payload("sorry, I can't help")


class TestExtraction:
    def test_returns_records(self, gateway, fake_model):
        fake_model.queue('[{"merchant": "Shell", "amount": 40}]')
        records = asyncio.run(
            gateway.extract_transactions("Paid 40 at Shell", SourceType.SMS, "u1")
        )
        assert records == [{"merchant": "Shell", "amount": 40}]

    def test_prompt_names_categories(self, gateway, fake_model):
        asyncio.run(gateway.extract_transactions("x", SourceType.EMAIL, "u1"))
        prompt = fake_model.calls[0][0]
        assert "Food & Delivery" in prompt
        assert "isBusiness" in prompt

    def test_image_sent_inline(self, gateway, fake_model):
        image = ImageUpload(filename="r.png", mime_type="image/png", data=b"png-bytes")
        asyncio.run(gateway.extract_transactions(
            "", SourceType.RECEIPT_IMAGE, "u1", image=image
        ))
        contents = fake_model.calls[0]
        assert {"mime_type": "image/png", "data": b"png-bytes"} in contents
        assert len(contents) == 2

    def test_malformed_response_is_empty(self, gateway, fake_model):
        fake_model.queue("I found some transactions!")
        result = asyncio.run(gateway.try_extract_transactions("x", SourceType.SMS, "u1"))
        assert result.value == []
        assert result.failure.kind == "parse"

    def test_network_failure_is_empty(self, gateway, fake_model):
        """A failed request looks like "nothing found" to the collapsing form."""
        fake_model.queue(google_exceptions.ServiceUnavailable("down"))
        records = asyncio.run(gateway.extract_transactions("x", SourceType.SMS, "u1"))
        assert records == []

    def test_non_object_items_dropped(self, gateway, fake_model):
        fake_model.queue('[{"merchant": "A"}, "junk", 3]')
        records = asyncio.run(gateway.extract_transactions("x", SourceType.SMS, "u1"))
        assert records == [{"merchant": "A"}]


class TestInsights:
    def test_parses_leaks_and_suggestions(self, gateway, fake_model, make_transaction):
        fake_model.queue(INSIGHTS)
        insights = asyncio.run(gateway.generate_insights([make_transaction()]))
        assert insights.leaks[0].amount == Decimal("120")
        assert insights.suggestions[0].estimated_monthly_saving == Decimal("80")

    def test_empty_input_makes_no_call(self, gateway, fake_model):
        insights = asyncio.run(gateway.generate_insights([]))
        assert insights == Insights()
        assert fake_model.calls == []

    def test_failure_gives_empty_insights(self, gateway, fake_model, make_transaction):
        fake_model.queue(google_exceptions.ResourceExhausted("quota"))
        result = asyncio.run(gateway.try_generate_insights([make_transaction()]))
        assert result.value.is_empty
        assert not result.ok
        assert result.failure.kind == "quota"

    def test_timeout_gives_empty_insights(self, gateway, fake_model, make_transaction):
        fake_model.queue(SLOW)
        result = asyncio.run(gateway.try_generate_insights([make_transaction()]))
        assert result.value.is_empty
        assert result.failure.kind == "timeout"

    def test_bad_items_dropped(self, gateway, fake_model, make_transaction):
        fake_model.queue(json.dumps({"leaks": [{"description": "no title"}], "suggestions": []}))
        result = asyncio.run(gateway.try_generate_insights([make_transaction()]))
        assert result.ok
        assert result.value.leaks == []


class TestBillPrediction:
    def test_parses_predictions(self, gateway, fake_model, make_transaction):
        fake_model.queue(PREDICTIONS)
        predictions = asyncio.run(gateway.predict_bills([make_transaction()]))
        assert predictions[0].frequency == BillFrequency.MONTHLY
        assert predictions[0].next_expected_date == date(2025, 4, 2)

    def test_uses_most_recent_history(self, gateway, fake_model, make_transaction):
        transactions = [make_transaction(str(i)) for i in range(60)]
        asyncio.run(gateway.predict_bills(transactions))
        prompt = fake_model.calls[0][0]
        assert '"a": "10"' in prompt
        assert '"a": "9"' not in prompt

    def test_no_history_makes_no_call(self, gateway, fake_model):
        assert asyncio.run(gateway.predict_bills([])) == []
        assert fake_model.calls == []

    def test_failure_gives_empty_list(self, gateway, fake_model, make_transaction):
        fake_model.queue(ValueError("blocked"))
        assert asyncio.run(gateway.predict_bills([make_transaction()])) == []


class TestRetries:
    def test_transient_error_is_retried(self, fake_model, app_settings, make_transaction):
        settings = GeminiSettings(api_key="test-key", max_retries=2, request_timeout_seconds=1)
        gateway = GeminiGateway(settings, app_settings, model_factory=fake_model)
        fake_model.queue(google_exceptions.ServiceUnavailable("blip"), PREDICTIONS)

        result = asyncio.run(gateway.try_predict_bills([make_transaction()]))

        assert result.ok
        assert len(fake_model.calls) == 2

    def test_cancellation_propagates(self, gateway, fake_model, make_transaction):
        fake_model.queue(SLOW)

        async def scenario():
            task = asyncio.ensure_future(gateway.predict_bills([make_transaction()]))
            await asyncio.sleep(0.01)
            task.cancel()
            await task

        with pytest.raises(asyncio.CancelledError):
            asyncio.run(scenario())


class TestFinancialChat:
    def test_greeting_and_reply(self, gateway, fake_model, make_transaction):
        fake_model.chat_replies.append("You spent $10 on groceries.")
        chat = FinancialChat.start(gateway, [make_transaction()])

        reply = asyncio.run(chat.send("How much on groceries?"))

        assert reply == "You spent $10 on groceries."
        assert [m.role for m in chat.history] == ["model", "user", "model"]
        assert chat.history[0].text == GREETING

    def test_context_lists_recent_transactions(self, gateway, fake_model, make_transaction):
        transactions = [
            make_transaction(str(i), occurred_at=datetime(2025, 3, 1, 9, 0))
            for i in range(40)
        ]
        FinancialChat.start(gateway, transactions, history_size=30)

        instruction = fake_model.factory_calls[-1]["system_instruction"]
        assert "2025-03-01T09:00:00: Corner Shop $39 (Groceries)" in instruction
        assert "$9 (Groceries)" not in instruction
        assert fake_model.factory_calls[-1]["json_output"] is False

    def test_empty_reply(self, gateway, fake_model):
        fake_model.chat_replies.append("   ")
        chat = FinancialChat.start(gateway, [])
        assert asyncio.run(chat.send("hello")) == EMPTY_REPLY

    def test_failure_reply(self, gateway, fake_model):
        fake_model.chat_replies.append(ConnectionError("reset"))
        chat = FinancialChat.start(gateway, [])

        assert asyncio.run(chat.send("hello")) == CONNECTION_LOST_REPLY
        assert chat.last_failure.kind == "network"

    def test_blank_message_ignored(self, gateway):
        chat = FinancialChat.start(gateway, [])
        assert asyncio.run(chat.send("  ")) == ""
        assert len(chat.history) == 1
