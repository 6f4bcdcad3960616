"""
Outline generator agent.

Produces the interview title, category and the fixed ordered list of base
questions from a parsed resume, once, before the session starts.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel

from mock_interview.config import get_settings
from mock_interview.models.llm_client import LLMClient, LLMClientBase, Message
from mock_interview.session.schemas import InterviewOutline

logger = logging.getLogger(__name__)


class OutlineGenerationError(Exception):
    """Raised when the model output cannot be turned into an outline."""


class OutlineGeneratorBase(ABC):
    """Abstract base class for outline generators."""

    @abstractmethod
    async def generate(self, resume: BaseModel | dict[str, Any]) -> InterviewOutline:
        """
        Generate an outline for the candidate.

        Args:
            resume: Parsed resume (flat or sectioned).

        Returns:
            Outline with title, category and questions.

        Raises:
            OutlineGenerationError: If no usable outline was produced.
        """
        ...


class OutlineGenerator(OutlineGeneratorBase):
    """LLM-based outline generator playing a senior hiring manager."""

    OUTLINE_PROMPT = """You are a senior hiring manager. Based on the candidate's resume, determine an interview title, a category, and generate {count} insightful questions.
Return a valid JSON object with three keys: "title", "category", and "questions".
- "title": A short title for the interview.
- "category": A single category (e.g., "Technical").
- "questions": An array of {count} string questions.

Candidate's Data:
```json
{resume}
```"""

    def __init__(
        self,
        llm_client: LLMClientBase | None = None,
        question_count: int | None = None,
    ) -> None:
        """
        Initialize the outline generator.

        Args:
            llm_client: LLM client for generation. Creates default if None.
            question_count: Questions to request (uses config if not provided).
        """
        self._llm_client = llm_client or LLMClient()
        self._question_count = question_count or get_settings().outline_question_count

    @property
    def question_count(self) -> int:
        return self._question_count

    @staticmethod
    def _clean_questions(value: Any) -> list[str]:
        """Keep non-empty string questions; accept {"question": ...} items too."""
        if not isinstance(value, list):
            return []
        cleaned: list[str] = []
        for item in value:
            if isinstance(item, dict):
                item = item.get("question") or item.get("text")
            if not isinstance(item, str):
                continue
            s = item.strip()
            if s:
                cleaned.append(s)
        return cleaned

    async def generate(self, resume: BaseModel | dict[str, Any]) -> InterviewOutline:
        data = resume.model_dump(by_alias=True) if isinstance(resume, BaseModel) else resume
        if not data:
            raise OutlineGenerationError("Valid resume data is required.")

        prompt = self.OUTLINE_PROMPT.format(
            count=self._question_count,
            resume=json.dumps(data, indent=2, ensure_ascii=False),
        )
        response, decoded = await self._llm_client.chat_json(
            messages=[Message(role="user", content=prompt)],
        )
        if response.failed:
            raise OutlineGenerationError(f"LLM request failed: {response.error}")
        if not decoded.ok:
            raise OutlineGenerationError("AI failed to generate outline.")

        payload = decoded.as_dict()
        # A bare array of questions is accepted as-is.
        questions = self._clean_questions(payload.get("questions", payload.get("items")))
        if not questions:
            raise OutlineGenerationError("AI failed to generate outline.")
        if len(questions) != self._question_count:
            logger.warning(f"Outline has {len(questions)} questions, expected {self._question_count}")

        title = payload.get("title")
        category = payload.get("category")
        outline = InterviewOutline(
            title=title.strip() if isinstance(title, str) and title.strip() else "Mock Interview",
            category=category.strip() if isinstance(category, str) and category.strip() else "General",
            questions=questions[: self._question_count],
        )
        logger.info(f"Generated outline {outline.title!r} ({outline.category}) with {len(outline.questions)} questions")
        return outline
