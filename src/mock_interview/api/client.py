"""
HTTP answer evaluator.

Lets a local session evaluate answers through a running API server instead
of calling the LLM in-process.
"""

import logging

import httpx

from mock_interview.agents.answer_evaluator import (
    AnswerEvaluatorBase,
    EvaluatorUnavailableError,
    MalformedEvaluationError,
    parse_evaluation,
)
from mock_interview.config import get_settings
from mock_interview.models.llm_client import decode_json_payload
from mock_interview.session.schemas import AnswerEvaluation, TranscriptEntry

logger = logging.getLogger(__name__)


class HttpAnswerEvaluator(AnswerEvaluatorBase):
    """Calls ``POST /api/process-answer`` on a mock interview API server."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the HTTP evaluator.

        Args:
            base_url: API server base URL (uses config if not provided).
            timeout: Request timeout in seconds (uses config if not provided).
            transport: Optional httpx transport, e.g. ``httpx.MockTransport``.
        """
        settings = get_settings()
        self._base_url = base_url or settings.evaluator_base_url
        if not self._base_url:
            raise ValueError("No evaluator base URL configured (set EVALUATOR_BASE_URL)")
        self._timeout = timeout or settings.evaluator_timeout_s
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def evaluate(
        self,
        history: list[TranscriptEntry],
        answer: str,
        remaining_questions: list[str],
    ) -> AnswerEvaluation:
        client = await self._get_client()
        body = {
            "conversationHistory": [e.model_dump(mode="json") for e in history],
            "userAnswer": answer,
            "remainingQuestions": remaining_questions,
        }
        try:
            response = await client.post("/api/process-answer", json=body)
        except httpx.HTTPError as e:
            raise EvaluatorUnavailableError(f"Evaluator request failed: {e}") from e

        decoded = decode_json_payload(response.text)
        if response.status_code != httpx.codes.OK:
            detail = decoded.as_dict().get("error") or response.reason_phrase
            raise EvaluatorUnavailableError(f"Evaluator returned {response.status_code}: {detail}")
        if not decoded.ok:
            raise MalformedEvaluationError(decoded.error)
        return parse_evaluation(decoded.payload)
