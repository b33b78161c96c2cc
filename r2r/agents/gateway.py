"""
Insight/Prediction Gateway

DESIGN DECISION: Everything "intelligent" is delegated to Gemini through
this one class. The rest of the app treats it as a black box that returns
structured data.

CRITICAL BOUNDARIES:

1. The gateway NEVER raises for an external failure. Network errors,
   timeouts, quota errors and unparseable responses all come back as an
   empty default:
   - extraction  -> []
   - insights    -> Insights(leaks=[], suggestions=[])
   - predictions -> []

2. Each operation has a try_* form returning a GatewayResult, which keeps
   the ExternalServiceFailure next to the empty default. The plain form
   returns only the value, so "request failed" and "nothing found" look
   identical to callers that do not ask.

3. Cancellation is never swallowed. Only Exception subclasses are
   converted into failures; asyncio.CancelledError propagates.

4. The gateway does no arithmetic. Totals and shares come from
   r2r.analytics.
"""

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

import google.generativeai as genai
import structlog
from google.api_core import exceptions as google_exceptions
from pydantic import BaseModel, ValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from r2r.config import AppSettings, GeminiSettings, get_settings
from r2r.models.finance import (
    BillPrediction,
    ImageUpload,
    Insights,
    Leak,
    SourceType,
    Suggestion,
    Transaction,
    TransactionCategory,
)


logger = structlog.get_logger(__name__)

T = TypeVar("T")
ModelT = TypeVar("ModelT", bound=BaseModel)

SERVICE_NAME = "gemini"

# Failure kinds recorded on ExternalServiceFailure
FAILURE_TIMEOUT = "timeout"
FAILURE_QUOTA = "quota"
FAILURE_NETWORK = "network"
FAILURE_PARSE = "parse"
FAILURE_UNKNOWN = "unknown"

_TRANSIENT_ERRORS = (
    asyncio.TimeoutError,
    google_exceptions.ServiceUnavailable,
    google_exceptions.InternalServerError,
    google_exceptions.DeadlineExceeded,
    ConnectionError,
)


class GatewayError(Exception):
    """Base exception for gateway errors."""
    pass


class ExternalServiceFailure(GatewayError):
    """
    The AI service could not produce a usable answer.

    Never raised out of the gateway; carried on GatewayResult.failure.
    """

    def __init__(self, operation: str, kind: str, message: str):
        self.operation = operation
        self.kind = kind
        super().__init__(f"{operation} failed ({kind}): {message}")


class ResponseParseError(GatewayError):
    """The model answered, but not with the JSON we asked for."""
    pass


@dataclass
class GatewayResult(Generic[T]):
    """
    Outcome of a gateway call.

    `value` is always usable: the real answer on success, the empty
    default on failure.
    """

    value: T
    failure: Optional[ExternalServiceFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    def unwrap_or_default(self) -> T:
        return self.value


def classify_failure(error: Exception) -> str:
    if isinstance(error, asyncio.TimeoutError):
        return FAILURE_TIMEOUT
    if isinstance(error, google_exceptions.ResourceExhausted):
        return FAILURE_QUOTA
    if isinstance(error, (google_exceptions.GoogleAPIError, ConnectionError, OSError)):
        return FAILURE_NETWORK
    if isinstance(error, (ResponseParseError, ValidationError, ValueError)):
        return FAILURE_PARSE
    return FAILURE_UNKNOWN


def _is_transient(error: BaseException) -> bool:
    return isinstance(error, _TRANSIENT_ERRORS)


def load_json_payload(text: Optional[str]) -> Any:
    """
    Parse the JSON body of a model response.

    Tolerates markdown code fences and prose around the JSON.
    """
    if not text or not text.strip():
        raise ResponseParseError("Empty response")
    text = text.strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    # Find the outermost array or object in the response
    for opener, closer in (("[", "]"), ("{", "}")):
        start = text.find(opener)
        end = text.rfind(closer) + 1
        if start >= 0 and end > start:
            try:
                return json.loads(text[start:end])
            except json.JSONDecodeError:
                continue
    raise ResponseParseError(f"No JSON found in response: {text[:80]!r}")


def validate_items(model: type[ModelT], items: Any, operation: str) -> list[ModelT]:
    """Validate a list of payload items, dropping the malformed ones."""
    if not isinstance(items, list):
        raise ResponseParseError(f"{operation}: expected a JSON array")
    valid = []
    for index, item in enumerate(items):
        try:
            valid.append(model.model_validate(item))
        except ValidationError as e:
            logger.warning(
                "gemini_item_dropped",
                operation=operation,
                index=index,
                error=str(e),
            )
    return valid


def _transaction_history(transactions: list[Transaction]) -> list[dict]:
    return [
        {
            "date": t.occurred_at.isoformat(),
            "merchant": t.merchant,
            "amount": str(t.amount),
            "category": t.category.value,
        }
        for t in transactions
    ]


class GeminiGateway:
    """
    Gemini-backed extraction, insights, bill prediction and chat.

    Args:
        settings: Gemini configuration (defaults to the environment)
        app_settings: Application configuration (history sizes)
        model_factory: Builds a model object exposing
            `generate_content_async` and `start_chat`. Defaults to
            google.generativeai.GenerativeModel. Tests pass fakes here.
    """

    def __init__(
        self,
        settings: Optional[GeminiSettings] = None,
        app_settings: Optional[AppSettings] = None,
        model_factory: Optional[Callable[..., Any]] = None,
    ):
        self._settings = settings or get_settings().gemini
        self._app_settings = app_settings or get_settings().app
        if model_factory is None:
            genai.configure(api_key=self._settings.api_key)
            model_factory = self._build_model
        self._model_factory = model_factory

    @property
    def settings(self) -> GeminiSettings:
        return self._settings

    def _build_model(
        self,
        model_name: str,
        json_output: bool = True,
        system_instruction: Optional[str] = None,
    ):
        generation_config = {
            "temperature": self._settings.temperature,
            "max_output_tokens": self._settings.max_tokens,
        }
        if json_output:
            generation_config["response_mime_type"] = "application/json"
        return genai.GenerativeModel(
            model_name=model_name,
            generation_config=generation_config,
            system_instruction=system_instruction,
        )

    async def _generate(self, model_name: str, contents: list) -> str:
        """One request with retry on transient errors and a hard deadline."""
        model = self._model_factory(model_name, json_output=True)
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._settings.max_retries),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception(_is_transient),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                response = await asyncio.wait_for(
                    model.generate_content_async(contents),
                    timeout=self._settings.request_timeout_seconds,
                )
        # .text raises ValueError when the response was blocked
        return response.text

    async def _call(
        self,
        operation: str,
        model_name: str,
        contents: list,
        parse: Callable[[Any], T],
        default: T,
    ) -> GatewayResult[T]:
        try:
            text = await self._generate(model_name, contents)
            value = parse(load_json_payload(text))
        except Exception as e:
            failure = ExternalServiceFailure(operation, classify_failure(e), str(e))
            logger.warning(
                "gemini_request_failed",
                operation=operation,
                kind=failure.kind,
                error=str(e),
            )
            return GatewayResult(value=default, failure=failure)
        return GatewayResult(value=value)

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------

    @staticmethod
    def extraction_prompt(source_type: SourceType) -> str:
        categories = ", ".join(c.value for c in TransactionCategory)
        return f"""TASK: High-precision financial extraction from a {source_type.value.replace('_', ' ')}.

Extract every purchase or payment as a JSON object with these fields:
- datetime: ISO 8601 timestamp of the transaction
- merchant: who was paid
- amount: positive number, no currency symbol
- currency: ISO 4217 code
- category: one of [{categories}]
- isBusiness: true if this looks like a business expense

Return ONLY a JSON array. Return [] if there are no transactions."""

    async def try_extract_transactions(
        self,
        raw_text: str,
        source_type: SourceType,
        user_id: str,
        image: Optional[ImageUpload] = None,
    ) -> GatewayResult[list[dict]]:
        """
        Extract transaction-shaped records from text and/or an image.

        Records are returned raw; ExtractionValidator turns them into
        Transactions for user_id.
        """
        contents: list = [self.extraction_prompt(source_type)]
        if image is not None:
            contents.append({"mime_type": image.mime_type, "data": image.data})
        if raw_text and raw_text.strip():
            contents.append(raw_text)

        def parse(payload: Any) -> list[dict]:
            if isinstance(payload, dict):
                payload = payload.get("transactions", [payload])
            if not isinstance(payload, list):
                raise ResponseParseError("extract: expected a JSON array")
            return [item for item in payload if isinstance(item, dict)]

        logger.info(
            "gemini_extract",
            user_id=user_id,
            source_type=source_type.value,
            has_image=image is not None,
        )
        return await self._call(
            "extract",
            self._settings.extraction_model,
            contents,
            parse,
            default=[],
        )

    async def extract_transactions(
        self,
        raw_text: str,
        source_type: SourceType,
        user_id: str,
        image: Optional[ImageUpload] = None,
    ) -> list[dict]:
        result = await self.try_extract_transactions(raw_text, source_type, user_id, image)
        return result.value

    # ------------------------------------------------------------------
    # Insights
    # ------------------------------------------------------------------

    async def try_generate_insights(
        self,
        transactions: list[Transaction],
    ) -> GatewayResult[Insights]:
        """Leaks and suggestions for a transaction set."""
        if not transactions:
            return GatewayResult(value=Insights())

        prompt = f"""Analyze this spending history:
{json.dumps(_transaction_history(transactions))}

Identify:
- leaks: recurring wasteful spending, each {{"title", "description", "amount"}} where amount is the estimated monthly cost
- suggestions: actionable advice, each {{"action", "rationale", "estimatedMonthlySaving"}}

Return ONLY a JSON object: {{"leaks": [...], "suggestions": [...]}}"""

        def parse(payload: Any) -> Insights:
            if not isinstance(payload, dict):
                raise ResponseParseError("insights: expected a JSON object")
            return Insights(
                leaks=validate_items(Leak, payload.get("leaks", []), "insights"),
                suggestions=validate_items(
                    Suggestion, payload.get("suggestions", []), "insights"
                ),
            )

        return await self._call(
            "insights",
            self._settings.analysis_model,
            [prompt],
            parse,
            default=Insights(),
        )

    async def generate_insights(self, transactions: list[Transaction]) -> Insights:
        result = await self.try_generate_insights(transactions)
        return result.value

    # ------------------------------------------------------------------
    # Bill prediction
    # ------------------------------------------------------------------

    async def try_predict_bills(
        self,
        transactions: list[Transaction],
    ) -> GatewayResult[list[BillPrediction]]:
        """
        Recurring bills and subscriptions, from the most recent
        `prediction_history_size` transactions.
        """
        history = transactions[-self._app_settings.prediction_history_size:]
        if not history:
            return GatewayResult(value=[])

        compact = [
            {"d": t.occurred_at.isoformat(), "m": t.merchant, "a": str(t.amount)}
            for t in history
        ]
        prompt = f"""Identify recurring bills or subscriptions from this history (d=date, m=merchant, a=amount):
{json.dumps(compact)}

Return ONLY a JSON array of predictions, each:
{{"merchant": str, "estimatedAmount": number, "frequency": "weekly"|"monthly"|"annual",
  "nextExpectedDate": "YYYY-MM-DD", "confidence": number between 0 and 1, "isSubscription": bool}}"""

        return await self._call(
            "predict",
            self._settings.analysis_model,
            [prompt],
            lambda payload: validate_items(BillPrediction, payload, "predict"),
            default=[],
        )

    async def predict_bills(self, transactions: list[Transaction]) -> list[BillPrediction]:
        result = await self.try_predict_bills(transactions)
        return result.value

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    def start_chat_session(self, system_instruction: str):
        """Create a Gemini chat session seeded with the given instruction."""
        model = self._model_factory(
            self._settings.chat_model,
            json_output=False,
            system_instruction=system_instruction,
        )
        return model.start_chat(history=[])
