"""
Request and response bodies for the HTTP API.

Field names follow the JSON the web client sends (camelCase); Python code
uses the snake_case attribute names.
"""

from pydantic import BaseModel, ConfigDict, Field

from mock_interview.session.schemas import TranscriptEntry


class ParseResumeRequest(BaseModel):
    text: str | None = Field(default=None, description="Raw resume text")


class ExtractedText(BaseModel):
    text: str = Field(..., description="Text extracted from the uploaded resume")


class ProcessAnswerRequest(BaseModel):
    """Everything the evaluator needs to decide the next utterance."""

    model_config = ConfigDict(populate_by_name=True)

    conversation_history: list[TranscriptEntry] = Field(default_factory=list, alias="conversationHistory")
    user_answer: str = Field(..., alias="userAnswer")
    remaining_questions: list[str] = Field(default_factory=list, alias="remainingQuestions")


class ErrorResponse(BaseModel):
    error: str
