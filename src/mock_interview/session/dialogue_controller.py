"""
Turn-taking dialogue controller.

Drives one interview session through speak -> listen -> evaluate -> speak,
one turn at a time, until the outline is exhausted or the user leaves.

The controller is the only owner of the recognition session: it always
drops listening before speaking, waits out the echo delay before listening
again, and never starts recognition while a session is still active.
Evaluator failures and timeouts never stall the loop; the controller
apologizes, moves to the next outline question and carries on.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Coroutine
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from mock_interview.agents.answer_evaluator import AnswerEvaluatorBase, EvaluatorError
from mock_interview.session.qa_store import QAStore
from mock_interview.session.schemas import (
    AnswerEvaluation,
    EvaluationDecision,
    InterviewOutline,
    QAPair,
    Speaker,
)
from mock_interview.session.session_state import SessionState, SessionStateError
from mock_interview.voice.stt import RecognitionActiveError, SpeechInputDriver
from mock_interview.voice.tts import SpeechOutputDriver

logger = logging.getLogger(__name__)

GREETING = "Hello {name}, welcome to your {title}. Let's begin. {question}"
FALLBACK_UTTERANCE = "Sorry, something went wrong. Let's move on."
CLOSING_REMARK = "That was the last question. Thank you for your time, this concludes the interview."


@dataclass(frozen=True)
class ControllerConfig:
    echo_delay_s: float = 0.5
    stabilize_delay_s: float = 0.1
    evaluator_timeout_s: float = 45.0
    # Per-session turn logs go to <artifacts_dir>/<session_id>/ when set.
    artifacts_dir: str | None = None


class DialogueController:
    """
    Orchestrates the speech drivers and the answer evaluator for one session.

    Public operations (``start``, ``handle_answer``, ``repeat``, ``listen``,
    ``stop_listening``, ``leave``) are safe to call at any time; calls that do
    not make sense in the current phase are ignored.
    """

    def __init__(
        self,
        *,
        speech_output: SpeechOutputDriver,
        speech_input: SpeechInputDriver,
        evaluator: AnswerEvaluatorBase,
        store: QAStore | None = None,
        config: ControllerConfig | None = None,
    ) -> None:
        self._output = speech_output
        self._input = speech_input
        self._evaluator = evaluator
        self._store = store
        self._config = config or ControllerConfig()

        self._state: SessionState | None = None
        self._tasks: set[asyncio.Task] = set()
        self._ended = asyncio.Event()
        self._finished = False
        self._input_failed = False
        self._session_dir: Path | None = None
        self._turn_log_path: Path | None = None

        self._input.set_handlers(
            on_utterance=self._on_utterance,
            on_started=self._on_listening_started,
            on_error=self._on_input_error,
        )

    @property
    def state(self) -> SessionState | None:
        """Current session state, if a session was started."""
        return self._state

    @property
    def is_ended(self) -> bool:
        return self._state is not None and self._state.is_ended

    async def start(self, outline: InterviewOutline, candidate_name: str) -> str:
        """
        Start the session: greet the candidate and ask the first question.

        Args:
            outline: Generated outline; its first question is asked in the greeting.
            candidate_name: Name used in the greeting.

        Returns:
            The greeting utterance.

        Raises:
            SessionStateError: If a session was already started or the outline is empty.
        """
        if self._state is not None:
            raise SessionStateError("Controller already ran a session")

        state = SessionState(candidate_name=candidate_name, title=outline.title, category=outline.category)
        first_question = state.begin(outline.questions)
        self._state = state
        self._open_session_dir(outline)

        greeting = GREETING.format(name=candidate_name, title=outline.title, question=first_question)
        logger.info(
            f"[SESSION] start session={state.session_id} questions={len(state.queue) + 1} title={outline.title!r}"
        )
        self._add_ai_entry(greeting)
        self._spawn(self._speak(greeting))
        return greeting

    async def run(self, outline: InterviewOutline, candidate_name: str) -> list[QAPair]:
        """Start the session and wait until it ends. Returns the answered pairs."""
        await self.start(outline, candidate_name)
        await self.wait_ended()
        return self._state.qa_pairs if self._state else []

    async def wait_ended(self) -> None:
        await self._ended.wait()

    async def wait_idle(self) -> None:
        """Wait until no controller step is running (the session may still be waiting for input)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def handle_answer(self, answer: str) -> None:
        """
        Evaluate one final answer and speak what comes next.

        At most one evaluation runs at a time; a second answer delivered while
        one is in flight is dropped.
        """
        state = self._state
        text = (answer or "").strip()
        if state is None or state.is_ended or not text:
            return
        if state.is_speaking:
            logger.debug("[SESSION] ignoring answer while speaking")
            return
        if not state.try_begin_evaluation():
            logger.info(f"[SESSION] skipping duplicate answer processing: {text[:60]!r}")
            return

        try:
            self._input.abort()
            state.record_answer(text)
            self._log_turn(Speaker.USER, text)
            evaluation = await self._evaluate(state, text)

            if state.is_ended:
                logger.info("[SESSION] session ended during evaluation, discarding result")
                return
            utterance = self._next_utterance(state, evaluation)
        finally:
            state.finish_evaluation()

        if utterance is None:
            self._spawn(self._conclude())
            return
        self._add_ai_entry(utterance)
        self._spawn(self._speak(utterance))

    def repeat(self) -> bool:
        """Speak the last AI utterance again. Ignored while speaking or evaluating."""
        state = self._state
        if state is None or state.is_ended or state.is_speaking or state.is_processing_answer:
            return False
        text = state.last_ai_utterance()
        if not text:
            return False
        logger.info("[SESSION] repeating last utterance")
        self._spawn(self._speak(text))
        return True

    def listen(self) -> None:
        """Start listening on request. Cuts any speech in progress."""
        state = self._state
        if state is None or state.is_ended or state.is_processing_answer:
            return
        if state.is_speaking:
            self._output.cancel()
        self._input_failed = False
        self._spawn(self._listen())

    def stop_listening(self) -> None:
        """End the listening session now; whatever was heard is submitted."""
        state = self._state
        if state is None or state.is_ended or not (state.is_listening or self._input.is_listening):
            return
        self._input.stop()

    def leave(self) -> list[QAPair]:
        """
        End the session immediately.

        Cancels speech, recognition and pending steps; a late evaluator
        result is discarded. Returns the answered pairs.
        """
        state = self._state
        if state is None:
            return []
        if state.is_ended:
            return state.qa_pairs

        logger.info("[SESSION] leave requested")
        self._output.cancel()
        self._input.abort()
        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is not current:
                task.cancel()
        self._finish()
        return state.qa_pairs

    async def _evaluate(self, state: SessionState, answer: str) -> AnswerEvaluation | None:
        try:
            return await asyncio.wait_for(
                self._evaluator.evaluate(state.transcript, answer, state.queue.remaining),
                timeout=self._config.evaluator_timeout_s,
            )
        except asyncio.TimeoutError:
            logger.error(f"[SESSION] evaluator timed out after {self._config.evaluator_timeout_s:.1f}s")
        except EvaluatorError as e:
            logger.error(f"[SESSION] evaluator failed: {e}")
        except Exception:
            logger.exception("[SESSION] unexpected evaluator failure")
        return None

    def _next_utterance(self, state: SessionState, evaluation: AnswerEvaluation | None) -> str | None:
        """Apply the decision to the queue. None means the outline is exhausted."""
        if evaluation is None:
            next_question = state.queue.advance()
            if next_question is None:
                return None
            state.set_current_question(next_question)
            return f"{FALLBACK_UTTERANCE} {next_question}"

        if evaluation.decision is EvaluationDecision.NEXT_QUESTION:
            if state.queue.advance() is None:
                return None
            logger.info(f"[SESSION] next question ({len(state.queue)} left)")
        else:
            logger.info("[SESSION] follow-up question")

        state.set_current_question(evaluation.next_question_text)
        return evaluation.next_question_text

    async def _speak(self, text: str, *, listen_after: bool = True) -> None:
        state = self._state
        if state is None or state.is_ended:
            return

        self._input.abort()
        state.begin_speaking()
        try:
            spoken = await self._output.speak(text)
        finally:
            state.finish_speaking()
        if not spoken:
            logger.info("[SESSION] utterance was not spoken, continuing")

        if not listen_after or state.is_ended:
            return
        await asyncio.sleep(self._config.echo_delay_s)
        await self._listen()

    async def _listen(self) -> None:
        state = self._state
        if state is None or state.is_ended:
            return

        await asyncio.sleep(self._config.stabilize_delay_s)
        if state.is_ended or state.is_speaking or state.is_processing_answer:
            return
        if self._input.is_listening:
            # One session at a time; an overlapping request joins the live one.
            logger.debug("[SESSION] recognition already active, keeping the current session")
            state.begin_listening()
            return
        if not self._input.is_available:
            logger.warning("[SESSION] speech recognition not supported; waiting for a submitted answer")
            return

        state.begin_listening()
        try:
            self._input.start()
        except RecognitionActiveError:
            logger.error("[SESSION] recognizer refused a second session, keeping the live one")
            if not self._input.is_listening:
                state.finish_listening()

    async def _relisten(self) -> None:
        await asyncio.sleep(self._config.echo_delay_s)
        if self._input_failed:
            logger.info("[SESSION] recognition failed earlier; not restarting automatically")
            return
        await self._listen()

    async def _conclude(self) -> None:
        state = self._state
        if state is None or state.is_ended:
            return
        logger.info("[SESSION] outline exhausted")
        self._add_ai_entry(CLOSING_REMARK)
        await self._speak(CLOSING_REMARK, listen_after=False)
        self._finish()

    def _finish(self) -> None:
        state = self._state
        if state is None or self._finished:
            return
        self._finished = True
        pairs = state.end()
        if self._store is not None:
            try:
                self._store.save(pairs)
            except OSError as e:
                logger.error(f"[SESSION] could not persist QA pairs: {e}")
        self._write_result(pairs)
        self._ended.set()
        logger.info(f"[SESSION] ended session={state.session_id} answered={len(pairs)}")

    def _on_utterance(self, text: str) -> None:
        state = self._state
        if state is None or state.is_ended:
            return
        state.finish_listening()
        if text.strip():
            self._spawn(self.handle_answer(text))
        elif not state.is_speaking and not state.is_processing_answer:
            logger.debug("[SESSION] empty transcript, restarting recognition")
            self._spawn(self._relisten())

    def _on_listening_started(self) -> None:
        self._input_failed = False

    def _on_input_error(self, error: str) -> None:
        self._input_failed = True
        logger.error(f"[SESSION] recognition error: {error}")

    def _add_ai_entry(self, text: str) -> None:
        if self._state is None:
            return
        self._state.add_entry(Speaker.AI, text)
        self._log_turn(Speaker.AI, text)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("[SESSION] session step failed", exc_info=exc)

    def _open_session_dir(self, outline: InterviewOutline) -> None:
        if not self._config.artifacts_dir or self._state is None:
            return
        d = Path(self._config.artifacts_dir) / str(self._state.session_id)
        d.mkdir(parents=True, exist_ok=True)
        self._session_dir = d
        self._turn_log_path = d / "turns.jsonl"
        meta = {
            "session_id": str(self._state.session_id),
            "started_at": datetime.now().isoformat(),
            "candidate": self._state.candidate_name,
            "outline": outline.model_dump(),
        }
        (d / "meta.json").write_text(json.dumps(meta, indent=2), encoding="utf-8")

    def _write_result(self, pairs: list[QAPair]) -> None:
        if not self._session_dir or self._state is None:
            return
        data = {
            "session_id": str(self._state.session_id),
            "ended_at": datetime.now().isoformat(),
            "qa": [p.model_dump() for p in pairs],
            "transcript": self._state.get_conversation_context(),
        }
        (self._session_dir / "result.json").write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")

    def _log_turn(self, speaker: Speaker, text: str) -> None:
        if not self._turn_log_path:
            return
        rec = {
            "ts": datetime.now().isoformat(),
            "speaker": speaker.value,
            "text": text,
        }
        with self._turn_log_path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(rec, ensure_ascii=False) + "\n")
