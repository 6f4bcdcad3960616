"""
Text-based interview interface.

Runs a full mock interview in the terminal: the resume is ingested, the
outline generated, and the dialogue controller drives console speech
drivers (printed questions, typed answers).
"""

from abc import ABC, abstractmethod
from pathlib import Path

from mock_interview.agents.answer_evaluator import AnswerEvaluatorBase
from mock_interview.config import Settings, get_settings
from mock_interview.ingestion.resume_ingestion import ResumeIngestionService
from mock_interview.io.feedback_view import render_feedback
from mock_interview.models.llm_client import LLMClientBase
from mock_interview.session.dialogue_controller import ControllerConfig, DialogueController
from mock_interview.session.qa_store import QAStore
from mock_interview.session.schemas import QAPair
from mock_interview.voice.stt import ConsoleRecognizer, SpeechInputDriver
from mock_interview.voice.tts import ConsoleSynthesizer, SpeechOutputDriver


class InterviewInterface(ABC):
    """Abstract base class for interview interfaces."""

    def __init__(
        self,
        *,
        evaluator: AnswerEvaluatorBase,
        llm_client: LLMClientBase | None = None,
        store: QAStore | None = None,
        settings: Settings | None = None,
    ) -> None:
        """
        Initialize the interface.

        Args:
            evaluator: Answer evaluator the session uses between turns.
            llm_client: LLM client for resume parsing and outline generation.
            store: Where the QA list is handed off at the end (uses config if None).
            settings: Application settings (uses cached settings if None).
        """
        self._settings = settings or get_settings()
        self._evaluator = evaluator
        self._ingestion = ResumeIngestionService(
            llm_client=llm_client,
            question_count=self._settings.outline_question_count,
        )
        self._store = store or QAStore(self._settings.qa_store_path)
        self._controller: DialogueController | None = None

    @property
    def controller(self) -> DialogueController | None:
        return self._controller

    @abstractmethod
    def _build_drivers(self) -> tuple[SpeechOutputDriver, SpeechInputDriver]:
        """Create the speech output and input drivers for one session."""
        ...

    def _banner(self) -> str:
        return "Mock Interview"

    async def run(self, resume_path: str | Path, sectioned: bool = False) -> list[QAPair]:
        """
        Run one interview from a resume file.

        Returns:
            The answered question/answer pairs, in the order asked.
        """
        print("\n" + "=" * 60)
        print(self._banner())
        print("=" * 60 + "\n")

        print(f"Reading resume: {resume_path}")
        resume, outline = await self._ingestion.prepare_interview(resume_path, sectioned=sectioned)
        print(f"✓ Parsed: {resume.name} ({resume.role})")
        print(f"✓ Outline: {outline.title} [{outline.category}], {len(outline.questions)} questions")

        speech_output, speech_input = self._build_drivers()
        self._controller = DialogueController(
            speech_output=speech_output,
            speech_input=speech_input,
            evaluator=self._evaluator,
            store=self._store,
            config=ControllerConfig(
                echo_delay_s=self._settings.echo_delay_s,
                stabilize_delay_s=self._settings.stabilize_delay_s,
                evaluator_timeout_s=self._settings.evaluator_timeout_s,
                artifacts_dir=self._settings.artifacts_dir,
            ),
        )

        print("\n" + "-" * 60)
        print("Starting Interview")
        print("-" * 60 + "\n")

        try:
            pairs = await self._controller.run(outline, resume.name)
        finally:
            # Covers Ctrl-C: the session still hands off what was answered.
            self._controller.leave()

        render_feedback(pairs, title=outline.title)
        return pairs

    def _on_leave(self) -> None:
        if self._controller is not None:
            print("\nEnding interview...")
            self._controller.leave()


class TextInterface(InterviewInterface):
    """
    Command-line text interface for interviews.

    Questions are printed, answers are typed. ``/leave`` (or EOF) ends the
    session early.
    """

    def _banner(self) -> str:
        return "Mock Interview (text mode) - type /leave to end early"

    def _build_drivers(self) -> tuple[SpeechOutputDriver, SpeechInputDriver]:
        speech_output = SpeechOutputDriver(
            ConsoleSynthesizer(),
            max_retries=self._settings.speech_max_retries,
            retry_delay_s=self._settings.speech_retry_delay_s,
            stabilize_delay_s=self._settings.stabilize_delay_s,
        )
        speech_input = SpeechInputDriver(
            ConsoleRecognizer(on_leave=self._on_leave),
            silence_timeout_s=self._settings.silence_timeout_s,
        )
        return speech_output, speech_input
