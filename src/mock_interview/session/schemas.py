"""
Pydantic schemas for interview sessions.

Defines the transcript, outline, evaluation and resume profile models shared
by the dialogue controller, the LLM agents and the HTTP API.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

NOT_FOUND = "Not Found"


class Speaker(str, Enum):
    """Who produced a transcript entry."""

    AI = "AI"
    USER = "User"


class SessionPhase(str, Enum):
    """Phases of the turn-taking cycle."""

    IDLE = "idle"
    SPEAKING = "speaking"
    LISTENING = "listening"
    EVALUATING = "evaluating"
    ENDED = "ended"


class EvaluationDecision(str, Enum):
    """What the evaluator wants to do after an answer."""

    CROSS_QUESTION = "cross-question"
    NEXT_QUESTION = "next-question"


class TranscriptEntry(BaseModel):
    """A single utterance in the interview dialogue."""

    model_config = ConfigDict(frozen=True)

    speaker: Speaker = Field(..., description="Who spoke")
    text: str = Field(..., description="What was said")


class QAPair(BaseModel):
    """An outline or follow-up question together with the answer given."""

    question: str = Field(..., description="The question as it was asked")
    answer: str = Field(..., description="The user's final transcript")


class InterviewOutline(BaseModel):
    """Outline produced once before the session starts."""

    title: str = Field(..., description="Short interview title")
    category: str = Field(default="General", description="Interview category (e.g., Technical)")
    questions: list[str] = Field(default_factory=list, description="Ordered base questions")


class AnswerEvaluation(BaseModel):
    """Evaluator verdict on the latest answer."""

    analysis: str = Field(default="", description="Private reasoning, never spoken")
    decision: EvaluationDecision = Field(..., description="Follow up or advance")
    next_question_text: str = Field(..., min_length=1, description="Literal next utterance")


class ResumeProfile(BaseModel):
    """Flat resume field set."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(default=NOT_FOUND)
    role: str = Field(default=NOT_FOUND)
    skills: str = Field(default="", description="Comma-separated technical skills")
    technologies: str = Field(default="", description="Comma-separated tools and technologies")
    experience_summary: str = Field(default="", alias="experienceSummary")
    projects: str = Field(default="")

    @field_validator("name", "role", mode="before")
    @classmethod
    def _default_blank(cls, value: object) -> object:
        if value is None or (isinstance(value, str) and not value.strip()):
            return NOT_FOUND
        return value


class ResumeSection(BaseModel):
    """One titled block of a sectioned resume."""

    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)

    @field_validator("title", "content")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()


class SectionedResume(BaseModel):
    """Resume as name, role and free-form titled sections."""

    name: str = Field(default=NOT_FOUND)
    role: str = Field(default=NOT_FOUND)
    sections: list[ResumeSection] = Field(default_factory=list)

    @field_validator("name", "role", mode="before")
    @classmethod
    def _default_blank(cls, value: object) -> object:
        if value is None or (isinstance(value, str) and not value.strip()):
            return NOT_FOUND
        return value
