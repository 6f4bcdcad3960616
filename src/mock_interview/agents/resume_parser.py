"""
Resume parser agent.

Extracts a structured profile from raw resume text, either as the flat field
set (name, role, skills, technologies, experience summary, projects) or as
name/role plus free-form titled sections.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any

from pydantic import ValidationError

from mock_interview.models.llm_client import LLMClient, LLMClientBase, Message
from mock_interview.session.schemas import ResumeProfile, ResumeSection, SectionedResume

logger = logging.getLogger(__name__)

# Keeps the prompt inside the model's context window.
MAX_RESUME_CHARS = 12000


class ResumeParseError(Exception):
    """Raised when a resume cannot be turned into a usable profile."""


class ResumeSectionError(ResumeParseError):
    """Raised when a sectioned resume has a section with an empty title or content."""


class ResumeParserBase(ABC):
    """Abstract base class for resume parsers."""

    @abstractmethod
    async def parse(self, text: str) -> ResumeProfile:
        """
        Extract the flat field set from resume text.

        Args:
            text: Raw resume text.

        Returns:
            Parsed profile; ``name`` and ``role`` default to "Not Found".
        """
        ...

    @abstractmethod
    async def parse_sectioned(self, text: str) -> SectionedResume:
        """
        Extract name, role and titled sections from resume text.

        Raises:
            ResumeSectionError: If a section has an empty title or content.
        """
        ...


class ResumeParser(ResumeParserBase):
    """
    LLM-based resume parser.

    The model is asked for fenced JSON; anything it returns goes through the
    shared decoder and is then cleaned field by field.
    """

    FLAT_PROMPT = """You are an expert resume parser. Analyze the following resume text and extract the specified information. Present the output as a valid JSON object within a markdown code block.

Fields to extract:
- name: The full name of the candidate. Default to "Not Found" if missing.
- role: The most recent job title (e.g., "Senior Software Engineer"). Default to "Not Found".
- skills: A comma-separated string of technical skills.
- technologies: A comma-separated string of tools and technologies.
- experienceSummary: A 2-3 sentence summary of the professional experience.
- projects: A summary of the most important projects mentioned.

Resume Text:
```
{text}
```"""

    SECTIONED_PROMPT = """You are an expert resume parser. Split the following resume into its sections and present the output as a valid JSON object within a markdown code block.

Return:
{{
    "name": "<full name of the candidate, or \\"Not Found\\">",
    "role": "<most recent job title, or \\"Not Found\\">",
    "sections": [
        {{"title": "<section heading, e.g. Experience>", "content": "<the section text>"}},
        ...
    ]
}}

Every section must have a non-empty title and non-empty content. Omit empty sections.

Resume Text:
```
{text}
```"""

    def __init__(self, llm_client: LLMClientBase | None = None) -> None:
        """
        Initialize the resume parser.

        Args:
            llm_client: LLM client for extraction. Creates default if None.
        """
        self._llm_client = llm_client or LLMClient()

    @staticmethod
    def _clean_text(value: Any) -> str:
        """Coerce a value into a string; lists are joined with commas."""
        if value is None:
            return ""
        if isinstance(value, list):
            return ", ".join(str(v).strip() for v in value if isinstance(v, (str, int, float)) and str(v).strip())
        if not isinstance(value, str):
            return str(value).strip()
        return value.strip()

    @staticmethod
    def _clip(text: str) -> str:
        text = text.strip()
        return text[:MAX_RESUME_CHARS] if len(text) > MAX_RESUME_CHARS else text

    async def _extract(self, prompt: str) -> dict[str, Any]:
        response, decoded = await self._llm_client.chat_json(
            messages=[Message(role="user", content=prompt)],
        )
        if response.failed:
            raise ResumeParseError(f"LLM request failed: {response.error}")
        if not decoded.ok or not isinstance(decoded.payload, dict):
            raise ResumeParseError("Failed to parse JSON from the model's response.")
        return decoded.payload

    async def parse(self, text: str) -> ResumeProfile:
        if not text or not text.strip():
            raise ResumeParseError("Resume text is required.")

        data = await self._extract(self.FLAT_PROMPT.format(text=self._clip(text)))

        profile = ResumeProfile(
            name=self._clean_text(data.get("name")),
            role=self._clean_text(data.get("role")),
            skills=self._clean_text(data.get("skills")),
            technologies=self._clean_text(data.get("technologies")),
            experience_summary=self._clean_text(data.get("experienceSummary", data.get("experience_summary"))),
            projects=self._clean_text(data.get("projects")),
        )
        logger.info(f"Parsed resume for {profile.name!r} ({profile.role})")
        return profile

    async def parse_sectioned(self, text: str) -> SectionedResume:
        if not text or not text.strip():
            raise ResumeParseError("Resume text is required.")

        data = await self._extract(self.SECTIONED_PROMPT.format(text=self._clip(text)))

        raw_sections = data.get("sections") or []
        if not isinstance(raw_sections, list):
            raise ResumeSectionError("Resume sections must be a list.")

        sections: list[ResumeSection] = []
        for idx, item in enumerate(raw_sections):
            if not isinstance(item, dict):
                raise ResumeSectionError(f"Section {idx + 1} is not an object.")
            try:
                sections.append(
                    ResumeSection(
                        title=self._clean_text(item.get("title")),
                        content=self._clean_text(item.get("content")),
                    )
                )
            except ValidationError as e:
                raise ResumeSectionError(f"Section {idx + 1} must have a non-empty title and content.") from e

        resume = SectionedResume(
            name=self._clean_text(data.get("name")),
            role=self._clean_text(data.get("role")),
            sections=sections,
        )
        logger.info(f"Parsed sectioned resume for {resume.name!r}: {len(sections)} sections")
        return resume
