"""
Financial chat assistant.

The conversation is seeded with the user's most recent transactions and
kept in memory for the lifetime of the session. Nothing here is
persisted.
"""

import asyncio
from typing import Optional

import structlog

from r2r.agents.gateway import ExternalServiceFailure, GeminiGateway, classify_failure
from r2r.models.finance import ChatMessage, Transaction


logger = structlog.get_logger(__name__)

GREETING = (
    "Hi! I'm your R2R assistant. Ask me anything about your spending, "
    "budgets or upcoming bills."
)
EMPTY_REPLY = "I couldn't process that. Try again?"
CONNECTION_LOST_REPLY = "Connection lost. Please refresh."


def format_transaction_line(transaction: Transaction) -> str:
    return (
        f"{transaction.occurred_at.isoformat()}: {transaction.merchant} "
        f"${transaction.amount} ({transaction.category.value})"
    )


def build_system_instruction(transactions: list[Transaction], limit: int) -> str:
    """System prompt carrying the `limit` most recent transactions."""
    recent = transactions[-limit:] if limit > 0 else []
    context = "\n".join(format_transaction_line(t) for t in recent)
    return f"""You are R2R, a friendly personal finance assistant.
Answer questions using the user's recent transactions below. Be concise and
concrete; quote amounts where helpful. If the data does not answer the
question, say so.

RECENT TRANSACTIONS:
{context or "(none yet)"}"""


class FinancialChat:
    """
    One chat conversation.

    `send` always returns a reply string. A failed request yields
    CONNECTION_LOST_REPLY and is recorded on `last_failure`.
    """

    def __init__(self, session, timeout_seconds: float = 60.0):
        self._session = session
        self._timeout = timeout_seconds
        self.last_failure: Optional[ExternalServiceFailure] = None
        self.messages: list[ChatMessage] = [ChatMessage(role="model", text=GREETING)]

    @classmethod
    def start(
        cls,
        gateway: GeminiGateway,
        transactions: list[Transaction],
        history_size: int = 30,
    ) -> "FinancialChat":
        instruction = build_system_instruction(transactions, history_size)
        try:
            session = gateway.start_chat_session(instruction)
        except Exception as e:
            logger.warning("chat_start_failed", error=str(e))
            session = None
        return cls(session, timeout_seconds=gateway.settings.request_timeout_seconds)

    @property
    def history(self) -> list[ChatMessage]:
        return list(self.messages)

    async def send(self, text: str) -> str:
        text = text.strip()
        if not text:
            return ""
        self.messages.append(ChatMessage(role="user", text=text))
        reply = await self._ask(text)
        self.messages.append(ChatMessage(role="model", text=reply))
        return reply

    async def _ask(self, text: str) -> str:
        if self._session is None:
            self.last_failure = ExternalServiceFailure(
                "chat", "unknown", "Chat session could not be started"
            )
            return CONNECTION_LOST_REPLY
        try:
            response = await asyncio.wait_for(
                self._session.send_message_async(text),
                timeout=self._timeout,
            )
            reply = (response.text or "").strip()
        except Exception as e:
            self.last_failure = ExternalServiceFailure("chat", classify_failure(e), str(e))
            logger.warning("chat_request_failed", kind=self.last_failure.kind, error=str(e))
            return CONNECTION_LOST_REPLY
        self.last_failure = None
        return reply or EMPTY_REPLY
