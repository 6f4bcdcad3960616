"""
Agents module containing the LLM-backed interview agents.

Each agent wraps one model call behind a typed contract.
"""

from mock_interview.agents.answer_evaluator import (
    AnswerEvaluator,
    AnswerEvaluatorBase,
    EvaluatorError,
    EvaluatorUnavailableError,
    MalformedEvaluationError,
)
from mock_interview.agents.outline_generator import OutlineGenerationError, OutlineGenerator
from mock_interview.agents.resume_parser import ResumeParseError, ResumeParser, ResumeSectionError

__all__ = [
    "AnswerEvaluator",
    "AnswerEvaluatorBase",
    "EvaluatorError",
    "EvaluatorUnavailableError",
    "MalformedEvaluationError",
    "OutlineGenerator",
    "OutlineGenerationError",
    "ResumeParser",
    "ResumeParseError",
    "ResumeSectionError",
]
