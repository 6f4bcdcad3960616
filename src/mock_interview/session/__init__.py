"""
Session module: dialogue state, schemas and the QA hand-off store.

The turn-taking controller lives in ``mock_interview.session.dialogue_controller``.
"""

from mock_interview.session.qa_store import QAStore
from mock_interview.session.schemas import (
    AnswerEvaluation,
    EvaluationDecision,
    InterviewOutline,
    QAPair,
    ResumeProfile,
    ResumeSection,
    SectionedResume,
    SessionPhase,
    Speaker,
    TranscriptEntry,
)
from mock_interview.session.session_state import QuestionQueue, SessionState, SessionStateError

__all__ = [
    "QAStore",
    "AnswerEvaluation",
    "EvaluationDecision",
    "InterviewOutline",
    "QAPair",
    "ResumeProfile",
    "ResumeSection",
    "SectionedResume",
    "SessionPhase",
    "Speaker",
    "TranscriptEntry",
    "QuestionQueue",
    "SessionState",
    "SessionStateError",
]
