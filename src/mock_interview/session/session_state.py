"""
Interview session state.

Tracks the mutable state of one dialogue session: transcript, remaining
outline questions, answered question/answer pairs and the speaking /
listening / evaluating flags the controller toggles.
"""

from collections import deque
from collections.abc import Iterable
from datetime import datetime, timezone
from uuid import UUID, uuid4

from mock_interview.session.schemas import QAPair, SessionPhase, Speaker, TranscriptEntry


class SessionStateError(RuntimeError):
    """Raised when a transition would break a session invariant."""


class QuestionQueue:
    """Remaining outline questions, consumed from the front only."""

    def __init__(self, questions: Iterable[str] = ()) -> None:
        self._items: deque[str] = deque(q for q in questions if q and q.strip())

    def __len__(self) -> int:
        return len(self._items)

    @property
    def is_empty(self) -> bool:
        return not self._items

    @property
    def remaining(self) -> list[str]:
        """Snapshot of the remaining questions in order."""
        return list(self._items)

    def peek(self) -> str | None:
        return self._items[0] if self._items else None

    def advance(self) -> str | None:
        """Pop the front question. Returns None if the queue was already empty."""
        if not self._items:
            return None
        return self._items.popleft()


class SessionState:
    """
    Manages the mutable state of an interview session.

    ``is_speaking`` and ``is_listening`` are never true at the same time, and
    at most one answer evaluation is in flight.
    """

    def __init__(self, candidate_name: str, title: str, category: str = "") -> None:
        self._session_id: UUID = uuid4()
        self._candidate_name = candidate_name
        self._title = title
        self._category = category
        self._transcript: list[TranscriptEntry] = []
        self._queue = QuestionQueue()
        self._qa_pairs: list[QAPair] = []
        self._phase = SessionPhase.IDLE
        self._current_question: str | None = None
        self._is_speaking = False
        self._is_listening = False
        self._is_processing_answer = False
        self._started_at: datetime | None = None
        self._ended_at: datetime | None = None

    @property
    def session_id(self) -> UUID:
        return self._session_id

    @property
    def candidate_name(self) -> str:
        return self._candidate_name

    @property
    def title(self) -> str:
        return self._title

    @property
    def category(self) -> str:
        return self._category

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def current_question(self) -> str | None:
        return self._current_question

    @property
    def is_speaking(self) -> bool:
        return self._is_speaking

    @property
    def is_listening(self) -> bool:
        return self._is_listening

    @property
    def is_processing_answer(self) -> bool:
        return self._is_processing_answer

    @property
    def is_ended(self) -> bool:
        return self._phase is SessionPhase.ENDED

    @property
    def queue(self) -> QuestionQueue:
        return self._queue

    @property
    def transcript(self) -> list[TranscriptEntry]:
        """Get all transcript entries."""
        return self._transcript.copy()

    @property
    def qa_pairs(self) -> list[QAPair]:
        return self._qa_pairs.copy()

    @property
    def started_at(self) -> datetime | None:
        return self._started_at

    @property
    def ended_at(self) -> datetime | None:
        return self._ended_at

    def last_ai_utterance(self) -> str | None:
        for entry in reversed(self._transcript):
            if entry.speaker is Speaker.AI:
                return entry.text
        return None

    def begin(self, outline: list[str]) -> str:
        """
        Load the outline and return its first question.

        Raises:
            SessionStateError: If the session already started or the outline is empty.
        """
        if self._started_at is not None or self.is_ended:
            raise SessionStateError(f"Session already started (phase={self._phase.value})")
        questions = [q.strip() for q in outline if q and q.strip()]
        if not questions:
            raise SessionStateError("Cannot start a session with an empty outline")

        self._current_question = questions[0]
        self._queue = QuestionQueue(questions[1:])
        self._started_at = datetime.now(timezone.utc)
        return questions[0]

    def add_entry(self, speaker: Speaker, text: str) -> TranscriptEntry:
        entry = TranscriptEntry(speaker=speaker, text=text)
        self._transcript.append(entry)
        return entry

    def set_current_question(self, question: str) -> None:
        self._current_question = question

    def record_answer(self, answer: str) -> QAPair:
        """Append the user's answer to the transcript and pair it with the question asked."""
        self.add_entry(Speaker.USER, answer)
        pair = QAPair(question=self._current_question or "", answer=answer)
        self._qa_pairs.append(pair)
        return pair

    def begin_speaking(self) -> None:
        """Enter the speaking phase. Listening is always dropped first."""
        self._require_active()
        self._is_listening = False
        self._is_speaking = True
        self._phase = SessionPhase.SPEAKING

    def finish_speaking(self) -> None:
        self._is_speaking = False
        self._settle(SessionPhase.SPEAKING)

    def begin_listening(self) -> None:
        self._require_active()
        if self._is_speaking:
            raise SessionStateError("Cannot listen while speaking")
        self._is_listening = True
        self._phase = SessionPhase.LISTENING

    def finish_listening(self) -> None:
        self._is_listening = False
        self._settle(SessionPhase.LISTENING)

    def try_begin_evaluation(self) -> bool:
        """Take the answer-processing guard. Returns False if it is already held or the session ended."""
        if self._is_processing_answer or self.is_ended:
            return False
        self._is_processing_answer = True
        self._is_listening = False
        self._phase = SessionPhase.EVALUATING
        return True

    def finish_evaluation(self) -> None:
        self._is_processing_answer = False
        self._settle(SessionPhase.EVALUATING)

    def _settle(self, finished: SessionPhase) -> None:
        # Between turns the phase reads IDLE; a phase entered since is left alone.
        if self._phase is finished:
            self._phase = SessionPhase.IDLE

    def end(self) -> list[QAPair]:
        """Mark the session ended and return the answered pairs. Idempotent."""
        if not self.is_ended:
            self._phase = SessionPhase.ENDED
            self._ended_at = datetime.now(timezone.utc)
        self._is_speaking = False
        self._is_listening = False
        return self.qa_pairs

    def get_conversation_context(self, max_turns: int | None = None) -> list[dict[str, str]]:
        """Transcript as speaker/text dicts for the evaluator."""
        entries = self._transcript[-max_turns:] if max_turns else self._transcript
        return [{"speaker": e.speaker.value, "text": e.text} for e in entries]

    def _require_active(self) -> None:
        if self.is_ended:
            raise SessionStateError("Session has ended")
