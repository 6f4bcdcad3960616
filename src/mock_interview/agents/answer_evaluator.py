"""
Answer evaluator agent.

Looks at the latest answer in the context of the conversation and decides
whether to probe deeper (cross-question) or move on to the next outline
question, returning the literal text to say next.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any

from pydantic import ValidationError

from mock_interview.models.llm_client import LLMClient, LLMClientBase, Message
from mock_interview.session.schemas import AnswerEvaluation, TranscriptEntry

logger = logging.getLogger(__name__)


class EvaluatorError(Exception):
    """Base class for answer evaluation failures."""


class EvaluatorUnavailableError(EvaluatorError):
    """The evaluator could not be reached or returned no usable response."""


class MalformedEvaluationError(EvaluatorError):
    """The evaluator responded, but not with a usable decision."""


def parse_evaluation(payload: Any) -> AnswerEvaluation:
    """
    Validate a decoded evaluator payload.

    Raises:
        MalformedEvaluationError: If ``decision`` or ``next_question_text`` is
            missing, empty or not one of the known values.
    """
    if not isinstance(payload, dict):
        raise MalformedEvaluationError("Evaluator response is not a JSON object")
    if not payload.get("decision") or not str(payload.get("next_question_text") or "").strip():
        raise MalformedEvaluationError("AI response was not in the correct JSON format.")

    try:
        return AnswerEvaluation(
            analysis=str(payload.get("analysis") or ""),
            decision=str(payload["decision"]).strip().lower(),
            next_question_text=str(payload["next_question_text"]).strip(),
        )
    except ValidationError as e:
        raise MalformedEvaluationError(f"Invalid evaluator decision: {payload.get('decision')!r}") from e


class AnswerEvaluatorBase(ABC):
    """Abstract base class for answer evaluators."""

    @abstractmethod
    async def evaluate(
        self,
        history: list[TranscriptEntry],
        answer: str,
        remaining_questions: list[str],
    ) -> AnswerEvaluation:
        """
        Decide what to say after ``answer``.

        Args:
            history: Transcript so far, including the latest answer.
            answer: The user's latest answer.
            remaining_questions: Outline questions not yet asked, in order.

        Returns:
            The decision and the literal next utterance.

        Raises:
            EvaluatorError: If no usable decision could be produced.
        """
        ...


class AnswerEvaluator(AnswerEvaluatorBase):
    """
    LLM-based answer evaluator.

    Plays an interviewer persona that follows up on short or vague answers
    and otherwise moves through the outline.
    """

    EVALUATION_PROMPT = """You are "Alex," an expert, empathetic, and insightful technical interviewer. Your goal is to have a natural conversation. You must strictly follow these rules:

1. Analyze the user's last answer in the context of the question that was asked.
2. Based on your analysis, decide your next action: either ask a relevant follow-up question (`cross-question`) or move to the next question from the outline (`next-question`).
3. If the answer is short, vague, or misses a key point, you should `cross-question`. If the answer is thorough, you should `next-question`.
4. Your response MUST be a valid JSON object with three keys: "analysis" (your brief, private thoughts), "decision" (either "cross-question" or "next-question"), and "next_question_text" (the exact question you will ask next).

--- Interview Context ---
Full Conversation History: {history}
User's Latest Answer: "{answer}"
Remaining Questions in Outline: {remaining}

Your JSON Response:"""

    def __init__(self, llm_client: LLMClientBase | None = None) -> None:
        """
        Initialize the answer evaluator.

        Args:
            llm_client: LLM client for evaluation. Creates default if None.
        """
        self._llm_client = llm_client or LLMClient()

    async def evaluate(
        self,
        history: list[TranscriptEntry],
        answer: str,
        remaining_questions: list[str],
    ) -> AnswerEvaluation:
        prompt = self.EVALUATION_PROMPT.format(
            history=json.dumps([e.model_dump(mode="json") for e in history], ensure_ascii=False),
            answer=answer,
            remaining=json.dumps(remaining_questions, ensure_ascii=False),
        )

        response, decoded = await self._llm_client.chat_json(
            messages=[Message(role="user", content=prompt)],
        )
        if response.failed:
            raise EvaluatorUnavailableError(response.error or "LLM request failed")
        if not decoded.ok:
            logger.warning(f"Evaluator output could not be decoded: {decoded.error}")
            raise MalformedEvaluationError(decoded.error)

        evaluation = parse_evaluation(decoded.payload)
        logger.debug(f"Evaluation decision={evaluation.decision.value} analysis={evaluation.analysis[:120]!r}")
        return evaluation
