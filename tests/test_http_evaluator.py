import json

import httpx
import pytest

from mock_interview.agents.answer_evaluator import EvaluatorUnavailableError, MalformedEvaluationError
from mock_interview.api.client import HttpAnswerEvaluator
from mock_interview.session.schemas import EvaluationDecision, Speaker, TranscriptEntry


def _evaluator(handler) -> HttpAnswerEvaluator:
    return HttpAnswerEvaluator(base_url="http://interview.test", timeout=5, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_posts_camel_case_body_and_parses_decision() -> None:
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/process-answer"
        seen.append(json.loads(request.content))
        return httpx.Response(
            200,
            json={"analysis": "", "decision": "next-question", "next_question_text": "Q2"},
        )

    evaluator = _evaluator(handler)
    history = [TranscriptEntry(speaker=Speaker.AI, text="Q1"), TranscriptEntry(speaker=Speaker.USER, text="A1")]

    evaluation = await evaluator.evaluate(history, "A1", ["Q2"])
    await evaluator.close()

    assert evaluation.decision is EvaluationDecision.NEXT_QUESTION
    assert evaluation.next_question_text == "Q2"
    assert seen[0] == {
        "conversationHistory": [{"speaker": "AI", "text": "Q1"}, {"speaker": "User", "text": "A1"}],
        "userAnswer": "A1",
        "remainingQuestions": ["Q2"],
    }


@pytest.mark.asyncio
async def test_server_error_is_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"error": "AI response was not in the correct JSON format."})

    evaluator = _evaluator(handler)
    with pytest.raises(EvaluatorUnavailableError, match="correct JSON format"):
        await evaluator.evaluate([], "A1", [])
    await evaluator.close()


@pytest.mark.asyncio
async def test_transport_error_is_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    evaluator = _evaluator(handler)
    with pytest.raises(EvaluatorUnavailableError):
        await evaluator.evaluate([], "A1", [])
    await evaluator.close()


@pytest.mark.asyncio
async def test_malformed_body_is_malformed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"decision": "next-question"})

    evaluator = _evaluator(handler)
    with pytest.raises(MalformedEvaluationError):
        await evaluator.evaluate([], "A1", [])
    await evaluator.close()


def test_requires_base_url(monkeypatch) -> None:
    from mock_interview.config import get_settings

    monkeypatch.delenv("EVALUATOR_BASE_URL", raising=False)
    get_settings.cache_clear()
    try:
        with pytest.raises(ValueError):
            HttpAnswerEvaluator()
    finally:
        get_settings.cache_clear()
