import asyncio
import io
import json

import pytest

from mock_interview.agents.answer_evaluator import AnswerEvaluatorBase, EvaluatorError
from mock_interview.session.dialogue_controller import (
    CLOSING_REMARK,
    FALLBACK_UTTERANCE,
    ControllerConfig,
    DialogueController,
)
from mock_interview.session.qa_store import QAStore
from mock_interview.session.schemas import (
    AnswerEvaluation,
    EvaluationDecision,
    InterviewOutline,
    Speaker,
    TranscriptEntry,
)
from mock_interview.session.session_state import SessionStateError
from mock_interview.voice.stt import (
    RecognitionActiveError,
    RecognitionEvent,
    RecognitionEventType,
    SpeechInputDriver,
    SpeechRecognizer,
)
from mock_interview.voice.tts import ConsoleSynthesizer, SpeechOutputDriver

FAST = ControllerConfig(echo_delay_s=0.001, stabilize_delay_s=0.001, evaluator_timeout_s=1.0)


class ScriptedRecognizer(SpeechRecognizer):
    """Answers each listening session with the next scripted line; stays silent once exhausted."""

    def __init__(self, answers: list[str]) -> None:
        super().__init__()
        self._answers = list(answers)
        self._active = False
        self.sessions = 0
        self.concurrent_starts = 0
        self.aborts = 0

    @property
    def is_active(self) -> bool:
        return self._active

    def start(self) -> None:
        if self._active:
            self.concurrent_starts += 1
            raise RecognitionActiveError("already active")
        self._active = True
        self.sessions += 1
        if self._answers:
            answer = self._answers.pop(0)
            asyncio.get_running_loop().call_soon(self._answer, answer)

    def _answer(self, text: str) -> None:
        if not self._active:
            return
        self._emit(RecognitionEvent(RecognitionEventType.STARTED))
        self._emit(RecognitionEvent(RecognitionEventType.RESULT, transcript=text))
        self._active = False
        self._emit(RecognitionEvent(RecognitionEventType.ENDED))

    def say(self, text: str) -> None:
        """Report a partial transcript without ending the session."""
        self._emit(RecognitionEvent(RecognitionEventType.RESULT, transcript=text))

    def stop(self) -> None:
        self._active = False

    def abort(self) -> None:
        if self._active:
            self.aborts += 1
        self._active = False


class GuardedSynthesizer(ConsoleSynthesizer):
    """Records whether recognition was live while an utterance was being spoken."""

    def __init__(self) -> None:
        super().__init__(stream=io.StringIO())
        self.controller: DialogueController | None = None
        self.overlaps = 0

    async def speak(self, text: str) -> None:
        state = self.controller.state if self.controller else None
        if state is not None and (state.is_listening or self.controller._input.is_listening):
            self.overlaps += 1
        await super().speak(text)


class HoldingSynthesizer(GuardedSynthesizer):
    """Keeps the first utterance playing until it is cancelled."""

    def __init__(self) -> None:
        super().__init__()
        self.playing = asyncio.Event()
        self.released = asyncio.Event()

    async def speak(self, text: str) -> None:
        await super().speak(text)
        if not self.released.is_set():
            self.playing.set()
            await self.released.wait()

    def cancel(self) -> None:
        self.released.set()


class NextEvaluator(AnswerEvaluatorBase):
    """Always moves on, asking the next outline question verbatim."""

    def __init__(self) -> None:
        self.calls: list[tuple[list[TranscriptEntry], str, list[str]]] = []

    async def evaluate(self, history, answer, remaining_questions) -> AnswerEvaluation:
        self.calls.append((history, answer, remaining_questions))
        text = remaining_questions[0] if remaining_questions else "Anything else?"
        return AnswerEvaluation(decision=EvaluationDecision.NEXT_QUESTION, next_question_text=text)


class CrossEvaluator(AnswerEvaluatorBase):
    async def evaluate(self, history, answer, remaining_questions) -> AnswerEvaluation:
        return AnswerEvaluation(
            decision=EvaluationDecision.CROSS_QUESTION,
            next_question_text=f"Why did you say '{answer}'?",
        )


class FailingEvaluator(AnswerEvaluatorBase):
    def __init__(self) -> None:
        self.calls = 0

    async def evaluate(self, history, answer, remaining_questions) -> AnswerEvaluation:
        self.calls += 1
        raise EvaluatorError("model unavailable")


class SlowEvaluator(AnswerEvaluatorBase):
    async def evaluate(self, history, answer, remaining_questions) -> AnswerEvaluation:
        await asyncio.sleep(5)
        raise AssertionError("should have timed out")


class BlockingEvaluator(AnswerEvaluatorBase):
    def __init__(self) -> None:
        self.called = asyncio.Event()
        self.release = asyncio.Event()
        self.calls = 0

    async def evaluate(self, history, answer, remaining_questions) -> AnswerEvaluation:
        self.calls += 1
        self.called.set()
        await self.release.wait()
        return AnswerEvaluation(decision=EvaluationDecision.CROSS_QUESTION, next_question_text="Late follow-up?")


def _outline(*questions: str) -> InterviewOutline:
    return InterviewOutline(title="Backend Interview", category="Technical", questions=list(questions))


def _controller(evaluator, answers=(), *, store=None, config=FAST, synth=None):
    synth = synth or GuardedSynthesizer()
    recognizer = ScriptedRecognizer(list(answers))
    controller = DialogueController(
        speech_output=SpeechOutputDriver(synth, max_retries=0, retry_delay_s=0.001, stabilize_delay_s=0),
        speech_input=SpeechInputDriver(recognizer, silence_timeout_s=5),
        evaluator=evaluator,
        store=store,
        config=config,
    )
    synth.controller = controller
    return controller, synth, recognizer


async def _until(predicate, timeout: float = 2.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(_poll(), timeout=timeout)


@pytest.mark.asyncio
async def test_outline_of_three_ends_after_three_answers(tmp_path) -> None:
    store = QAStore(tmp_path / "qa.json")
    evaluator = NextEvaluator()
    controller, synth, recognizer = _controller(evaluator, ["A1", "A2", "A3", "extra"], store=store)

    pairs = await asyncio.wait_for(controller.run(_outline("Q1", "Q2", "Q3"), "Ada"), timeout=5)

    assert [(p.question, p.answer) for p in pairs] == [("Q1", "A1"), ("Q2", "A2"), ("Q3", "A3")]
    assert len(evaluator.calls) == 3
    assert evaluator.calls[0][2] == ["Q2", "Q3"]
    assert evaluator.calls[2][2] == []
    assert synth.spoken[0] == "Hello Ada, welcome to your Backend Interview. Let's begin. Q1"
    assert synth.spoken[1:] == ["Q2", "Q3", CLOSING_REMARK]
    assert recognizer.sessions == 3
    assert controller.is_ended
    assert store.load() == pairs


@pytest.mark.asyncio
async def test_evaluator_sees_history_including_the_answer() -> None:
    evaluator = NextEvaluator()
    controller, _, _ = _controller(evaluator, ["A1"])

    await controller.start(_outline("Q1", "Q2"), "Ada")
    await _until(lambda: len(evaluator.calls) == 1)

    history, answer, _ = evaluator.calls[0]
    assert answer == "A1"
    assert [e.speaker for e in history] == [Speaker.AI, Speaker.USER]
    assert history[-1].text == "A1"
    controller.leave()


@pytest.mark.asyncio
async def test_cross_questions_never_exhaust_the_outline() -> None:
    controller, synth, _ = _controller(CrossEvaluator(), ["A1", "A2", "A3", "A4"])

    await controller.start(_outline("Q1", "Q2"), "Ada")
    await _until(lambda: len(controller.state.qa_pairs) == 4 and controller.state.is_listening)

    assert not controller.is_ended
    assert controller.state.queue.remaining == ["Q2"]
    assert synth.spoken[-1] == "Why did you say 'A4'?"
    pairs = controller.leave()

    assert controller.is_ended
    assert [p.question for p in pairs] == ["Q1", "Why did you say 'A1'?", "Why did you say 'A2'?", "Why did you say 'A3'?"]


@pytest.mark.asyncio
async def test_evaluator_failure_apologizes_and_advances() -> None:
    evaluator = FailingEvaluator()
    controller, synth, _ = _controller(evaluator, ["A1", "A2"])

    pairs = await asyncio.wait_for(controller.run(_outline("Q1", "Q2"), "Ada"), timeout=5)

    assert evaluator.calls == 2
    assert synth.spoken[1] == f"{FALLBACK_UTTERANCE} Q2"
    assert synth.spoken[-1] == CLOSING_REMARK
    assert [(p.question, p.answer) for p in pairs] == [("Q1", "A1"), ("Q2", "A2")]


@pytest.mark.asyncio
async def test_evaluator_timeout_falls_back() -> None:
    config = ControllerConfig(echo_delay_s=0.001, stabilize_delay_s=0.001, evaluator_timeout_s=0.05)
    controller, synth, _ = _controller(SlowEvaluator(), ["A1"], config=config)

    await controller.start(_outline("Q1", "Q2", "Q3"), "Ada")
    await _until(lambda: len(synth.spoken) == 2)

    assert synth.spoken[1] == f"{FALLBACK_UTTERANCE} Q2"
    assert controller.state.queue.remaining == ["Q3"]
    assert controller.state.current_question == "Q2"
    assert not controller.is_ended
    controller.leave()


@pytest.mark.asyncio
async def test_duplicate_answers_trigger_one_evaluation() -> None:
    evaluator = BlockingEvaluator()
    controller, _, _ = _controller(evaluator)

    await controller.start(_outline("Q1", "Q2", "Q3"), "Ada")
    await _until(lambda: controller.state.is_listening)

    both = asyncio.gather(controller.handle_answer("same answer"), controller.handle_answer("same answer"))
    await asyncio.wait_for(evaluator.called.wait(), timeout=2)
    evaluator.release.set()
    await both

    assert evaluator.calls == 1
    assert len(controller.state.qa_pairs) == 1
    controller.leave()


@pytest.mark.asyncio
async def test_result_after_leave_is_discarded() -> None:
    evaluator = BlockingEvaluator()
    controller, synth, _ = _controller(evaluator)

    await controller.start(_outline("Q1", "Q2"), "Ada")
    await _until(lambda: controller.state.is_listening)

    answer_task = asyncio.create_task(controller.handle_answer("A1"))
    await asyncio.wait_for(evaluator.called.wait(), timeout=2)
    pairs = controller.leave()
    evaluator.release.set()
    await answer_task
    await controller.wait_idle()

    assert controller.is_ended
    assert [p.answer for p in pairs] == ["A1"]
    assert controller.state.transcript[-1].speaker is Speaker.USER
    assert "Late follow-up?" not in synth.spoken
    assert not controller.state.is_processing_answer


@pytest.mark.asyncio
async def test_speech_and_recognition_never_overlap() -> None:
    controller, synth, recognizer = _controller(CrossEvaluator(), ["A1", "A2", "A3"])
    await controller.start(_outline("Q1", "Q2"), "Ada")
    await _until(lambda: len(controller.state.qa_pairs) == 3 and controller.state.is_listening)

    assert synth.overlaps == 0
    assert recognizer.concurrent_starts == 0
    controller.leave()


@pytest.mark.asyncio
async def test_listen_during_speech_keeps_the_requested_session() -> None:
    synth = HoldingSynthesizer()
    controller, _, recognizer = _controller(NextEvaluator(), synth=synth)
    await controller.start(_outline("Q1", "Q2"), "Ada")
    await asyncio.wait_for(synth.playing.wait(), timeout=1)
    assert controller.state.is_speaking

    controller.listen()
    await controller.wait_idle()

    assert recognizer.sessions == 1
    assert recognizer.aborts == 0
    assert controller.state.is_listening
    assert controller._input.is_listening
    controller.leave()


@pytest.mark.asyncio
async def test_repeated_listen_requests_share_one_session() -> None:
    controller, _, recognizer = _controller(NextEvaluator())
    await controller.start(_outline("Q1", "Q2"), "Ada")
    await _until(lambda: controller.state.is_listening)
    await controller.wait_idle()

    controller.listen()
    controller.listen()
    await controller.wait_idle()

    assert recognizer.sessions == 1
    assert controller.state.is_listening == controller._input.is_listening

    # Nothing was heard: the empty result queues an automatic re-listen.
    controller.stop_listening()
    controller.listen()
    controller.listen()
    await controller.wait_idle()

    assert recognizer.sessions == 2
    assert recognizer.concurrent_starts == 0
    assert controller.state.is_listening
    assert controller._input.is_listening
    controller.leave()


@pytest.mark.asyncio
async def test_stop_listening_submits_what_was_heard_once() -> None:
    evaluator = NextEvaluator()
    controller, _, recognizer = _controller(evaluator)
    await controller.start(_outline("Q1", "Q2"), "Ada")
    await _until(lambda: controller.state.is_listening)

    recognizer.say("I built the billing service")
    controller.stop_listening()
    controller.stop_listening()
    await _until(lambda: len(evaluator.calls) == 1)
    await controller.wait_idle()

    assert len(evaluator.calls) == 1
    assert evaluator.calls[0][1] == "I built the billing service"
    assert [(p.question, p.answer) for p in controller.state.qa_pairs] == [("Q1", "I built the billing service")]
    controller.leave()


@pytest.mark.asyncio
async def test_ai_turns_track_user_turns() -> None:
    controller, _, _ = _controller(NextEvaluator(), ["A1", "A2"])

    await controller.start(_outline("Q1", "Q2", "Q3", "Q4"), "Ada")
    await _until(lambda: len(controller.state.qa_pairs) == 2 and controller.state.is_listening)

    transcript = controller.state.transcript
    ai = sum(1 for e in transcript if e.speaker is Speaker.AI)
    user = sum(1 for e in transcript if e.speaker is Speaker.USER)
    assert ai - user in (0, 1)
    assert transcript[0].speaker is Speaker.AI
    controller.leave()


@pytest.mark.asyncio
async def test_repeat_speaks_last_utterance_without_new_entry() -> None:
    controller, synth, _ = _controller(NextEvaluator())

    await controller.start(_outline("Q1", "Q2"), "Ada")
    await _until(lambda: controller.state.is_listening)
    entries = len(controller.state.transcript)

    assert controller.repeat() is True
    await _until(lambda: len(synth.spoken) == 2)

    assert synth.spoken[0] == synth.spoken[1]
    assert len(controller.state.transcript) == entries
    controller.leave()


@pytest.mark.asyncio
async def test_empty_and_late_answers_are_ignored() -> None:
    evaluator = NextEvaluator()
    controller, _, _ = _controller(evaluator)

    await controller.start(_outline("Q1", "Q2"), "Ada")
    await _until(lambda: controller.state.is_listening)
    await controller.handle_answer("   ")
    assert evaluator.calls == []

    controller.leave()
    await controller.handle_answer("too late")
    assert evaluator.calls == []
    assert controller.state.qa_pairs == []


@pytest.mark.asyncio
async def test_start_twice_and_empty_outline_raise() -> None:
    controller, _, _ = _controller(NextEvaluator())
    with pytest.raises(SessionStateError):
        await controller.start(_outline(), "Ada")

    other, _, _ = _controller(NextEvaluator())
    await other.start(_outline("Q1"), "Ada")
    with pytest.raises(SessionStateError):
        await other.start(_outline("Q1"), "Ada")
    other.leave()


@pytest.mark.asyncio
async def test_leave_before_start_and_twice() -> None:
    controller, _, _ = _controller(NextEvaluator())
    assert controller.leave() == []

    await controller.start(_outline("Q1"), "Ada")
    assert controller.leave() == []
    assert controller.leave() == []
    await asyncio.wait_for(controller.wait_ended(), timeout=1)


@pytest.mark.asyncio
async def test_session_artifacts_are_written(tmp_path) -> None:
    config = ControllerConfig(
        echo_delay_s=0.001,
        stabilize_delay_s=0.001,
        evaluator_timeout_s=1.0,
        artifacts_dir=str(tmp_path),
    )
    controller, _, _ = _controller(NextEvaluator(), ["A1"], config=config)

    await asyncio.wait_for(controller.run(_outline("Q1"), "Ada"), timeout=5)

    session_dir = tmp_path / str(controller.state.session_id)
    meta = json.loads((session_dir / "meta.json").read_text(encoding="utf-8"))
    result = json.loads((session_dir / "result.json").read_text(encoding="utf-8"))
    turns = (session_dir / "turns.jsonl").read_text(encoding="utf-8").splitlines()

    assert meta["candidate"] == "Ada"
    assert result["qa"] == [{"question": "Q1", "answer": "A1"}]
    assert [json.loads(t)["speaker"] for t in turns] == ["AI", "User", "AI"]
