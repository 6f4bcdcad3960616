"""Speech input.

`SpeechInputDriver` turns a platform `SpeechRecognizer` event stream
(started / result / ended / error) into exactly one final transcript per
listening session, using a silence timer to detect the end of an answer.

Backends:
- `WhisperRecognizer`: continuous mic capture, re-transcribed with
  faster-whisper while the user speaks.
- `ConsoleRecognizer`: one typed line per session (text mode).
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import numpy as np

    from mock_interview.voice.audio_io import AudioIO

logger = logging.getLogger(__name__)

NO_SPEECH = "no-speech"


class RecognitionEventType(str, Enum):
    STARTED = "started"
    RESULT = "result"
    ENDED = "ended"
    ERROR = "error"


@dataclass(frozen=True)
class RecognitionEvent:
    type: RecognitionEventType
    # Full transcript of the session so far (RESULT only).
    transcript: str = ""
    error: str | None = None


RecognitionListener = Callable[[RecognitionEvent], None]


class RecognitionActiveError(RuntimeError):
    """Raised when a recognition session is started while another is still active."""


class SpeechRecognizer(ABC):
    """
    Platform speech-recognition capability.

    Events must be emitted on the event loop thread.
    """

    def __init__(self) -> None:
        self._listener: RecognitionListener | None = None

    def set_listener(self, listener: RecognitionListener | None) -> None:
        self._listener = listener

    def _emit(self, event: RecognitionEvent) -> None:
        if self._listener is not None:
            self._listener(event)

    @property
    @abstractmethod
    def is_active(self) -> bool: ...

    @abstractmethod
    def start(self) -> None:
        """Begin a session. Raises RecognitionActiveError if one is active."""
        ...

    @abstractmethod
    def stop(self) -> None:
        """End the session gracefully; ENDED follows."""
        ...

    @abstractmethod
    def abort(self) -> None:
        """End the session immediately, dropping pending results."""
        ...


class ConsoleRecognizer(SpeechRecognizer):
    """Reads one line from stdin per session and reports it as the transcript."""

    def __init__(
        self,
        *,
        prompt: str = "You: ",
        on_leave: Callable[[], None] | None = None,
        leave_commands: tuple[str, ...] = ("/leave", "/quit"),
    ) -> None:
        super().__init__()
        self._prompt = prompt
        self._on_leave = on_leave
        self._leave_commands = leave_commands
        self._active = False
        self._task: asyncio.Task | None = None
        # A blocking read cannot be cancelled; an aborted session hands it to the next one.
        self._pending_read: asyncio.Future | None = None

    @property
    def is_active(self) -> bool:
        return self._active

    def _readline(self) -> str | None:
        try:
            return input(self._prompt)
        except EOFError:
            return None

    def start(self) -> None:
        if self._active:
            raise RecognitionActiveError("Console recognition already active")
        self._active = True
        self._task = asyncio.get_running_loop().create_task(self._session())

    async def _session(self) -> None:
        self._emit(RecognitionEvent(RecognitionEventType.STARTED))
        if self._pending_read is None or self._pending_read.done():
            self._pending_read = asyncio.ensure_future(asyncio.to_thread(self._readline))
        line = await asyncio.shield(self._pending_read)
        self._pending_read = None

        if line is None or line.strip().lower() in self._leave_commands:
            self._active = False
            if self._on_leave is not None:
                self._on_leave()
            return

        self._emit(RecognitionEvent(RecognitionEventType.RESULT, transcript=line.strip()))
        self._active = False
        self._emit(RecognitionEvent(RecognitionEventType.ENDED))

    def stop(self) -> None:
        self._end_session()

    def abort(self) -> None:
        self._end_session()

    def _end_session(self) -> None:
        if not self._active:
            return
        self._active = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._emit(RecognitionEvent(RecognitionEventType.ENDED))


@dataclass(frozen=True)
class STTConfig:
    model_size: str = "small"
    # Default to CPU to avoid hard crashes when CUDA/cuDNN aren't present.
    device: str = "cpu"  # cpu|cuda|auto
    compute_type: str | None = None  # e.g. int8, float16
    language: str | None = "en"
    vad_filter: bool = True
    # How often the rolling buffer is re-transcribed.
    poll_interval_s: float = 1.5
    # The session ends on its own after this long without new words.
    no_speech_timeout_s: float = 8.0


class WhisperRecognizer(SpeechRecognizer):
    """faster-whisper over a continuously growing microphone buffer."""

    def __init__(self, audio: AudioIO, config: STTConfig | None = None) -> None:
        super().__init__()
        self._audio = audio
        self._config = config or STTConfig()
        self._model = None
        self._active = False
        self._aborted = False
        self._generation = 0
        self._task: asyncio.Task | None = None

    @property
    def config(self) -> STTConfig:
        return self._config

    @property
    def is_active(self) -> bool:
        return self._active

    def _load_model(self):
        if self._model is not None:
            return self._model

        try:
            from faster_whisper import WhisperModel  # type: ignore
        except Exception as e:  # pragma: no cover
            raise RuntimeError(
                "faster-whisper is required for STT. Install with: pip install -e '.[voice]'"
            ) from e

        device = self._config.device
        if device == "auto":
            # Be conservative: prefer CPU unless user explicitly requests CUDA.
            device = "cpu"

        kwargs = {}
        if self._config.compute_type:
            kwargs["compute_type"] = self._config.compute_type

        self._model = WhisperModel(self._config.model_size, device=device, **kwargs)
        return self._model

    def _transcribe(self, audio: np.ndarray) -> str:
        model = self._load_model()
        samples = (audio.astype("float32") / 32768.0).reshape(-1)
        segments, _info = model.transcribe(
            samples,
            language=self._config.language,
            vad_filter=self._config.vad_filter,
        )
        return " ".join(s.text.strip() for s in segments if s.text and s.text.strip()).strip()

    def start(self) -> None:
        if self._active:
            raise RecognitionActiveError("Whisper recognition already active")
        self._active = True
        self._aborted = False
        self._generation += 1
        previous = self._task
        self._task = asyncio.get_running_loop().create_task(self._session(previous, self._generation))

    def _emit_for(self, generation: int, event: RecognitionEvent) -> None:
        # A superseded session must not leak events into the next one.
        if generation == self._generation:
            self._emit(event)

    async def _session(self, previous: asyncio.Task | None, generation: int) -> None:
        if previous is not None and not previous.done():
            with contextlib.suppress(asyncio.CancelledError):
                await previous

        try:
            await self._audio.start_recording()
        except RuntimeError as e:
            if generation == self._generation:
                self._active = False
            logger.error(f"[VOICE][STT] microphone unavailable: {e}")
            self._emit_for(generation, RecognitionEvent(RecognitionEventType.ERROR, error="audio-capture"))
            return

        self._emit_for(generation, RecognitionEvent(RecognitionEventType.STARTED))
        last_text = ""
        last_change = time.monotonic()
        try:
            while True:
                await asyncio.sleep(self._config.poll_interval_s)
                audio = self._audio.snapshot()
                if audio.size == 0:
                    continue
                text = await asyncio.to_thread(self._transcribe, audio)
                now = time.monotonic()
                if text and text != last_text:
                    last_text = text
                    last_change = now
                    self._emit_for(generation, RecognitionEvent(RecognitionEventType.RESULT, transcript=text))
                elif now - last_change >= self._config.no_speech_timeout_s:
                    logger.info("[VOICE][STT] no new speech, ending recognition session")
                    if not last_text:
                        self._emit_for(generation, RecognitionEvent(RecognitionEventType.ERROR, error=NO_SPEECH))
                    break
        finally:
            await self._audio.stop_recording()
            if generation == self._generation:
                self._active = False
            if not self._aborted:
                self._emit_for(generation, RecognitionEvent(RecognitionEventType.ENDED))

    def stop(self) -> None:
        if not self._active:
            return
        self._active = False
        if self._task is not None:
            self._task.cancel()

    def abort(self) -> None:
        if not self._active:
            return
        self._aborted = True
        self.stop()


class SpeechInputDriver:
    """
    One listening session at a time, one final transcript per session.

    The transcript is delivered through ``on_utterance`` when the silence
    timer elapses or the recognizer ends on its own (including ``no-speech``
    errors), whichever comes first. An empty string is delivered when nothing
    was heard. ``abort`` ends the session without delivering anything.
    """

    def __init__(
        self,
        recognizer: SpeechRecognizer | None,
        *,
        silence_timeout_s: float = 3.0,
    ) -> None:
        self._recognizer = recognizer
        self._silence_timeout_s = silence_timeout_s
        self._on_utterance: Callable[[str], None] | None = None
        self._on_started: Callable[[], None] | None = None
        self._on_error: Callable[[str], None] | None = None
        self._session_open = False
        self._accumulated = ""
        self._silence_timer: asyncio.TimerHandle | None = None
        if recognizer is not None:
            recognizer.set_listener(self._handle_event)

    def set_handlers(
        self,
        *,
        on_utterance: Callable[[str], None],
        on_started: Callable[[], None] | None = None,
        on_error: Callable[[str], None] | None = None,
    ) -> None:
        self._on_utterance = on_utterance
        self._on_started = on_started
        self._on_error = on_error

    @property
    def is_available(self) -> bool:
        return self._recognizer is not None

    @property
    def is_listening(self) -> bool:
        return self._session_open or (self._recognizer is not None and self._recognizer.is_active)

    @property
    def transcript(self) -> str:
        """Transcript accumulated in the open session."""
        return self._accumulated

    def start(self) -> None:
        """
        Open a listening session.

        Raises:
            RecognitionActiveError: If a session is still active; abort it first.
        """
        if self._recognizer is None:
            logger.warning("[VOICE][STT] speech recognition not supported")
            return
        if self.is_listening:
            raise RecognitionActiveError("Recognition session already active; abort it before starting")

        self._accumulated = ""
        self._session_open = True
        logger.debug("[VOICE][STT] starting speech recognition")
        try:
            self._recognizer.start()
        except RecognitionActiveError:
            self._session_open = False
            raise

    def stop(self) -> None:
        """End the session now and deliver what was heard."""
        self._cancel_timer()
        self._deliver()
        if self._recognizer is not None and self._recognizer.is_active:
            self._recognizer.stop()

    def abort(self) -> None:
        """End the session now and discard what was heard."""
        self._cancel_timer()
        self._session_open = False
        self._accumulated = ""
        if self._recognizer is not None and self._recognizer.is_active:
            self._recognizer.abort()

    def _handle_event(self, event: RecognitionEvent) -> None:
        if not self._session_open:
            logger.debug(f"[VOICE][STT] ignoring {event.type.value} outside a session")
            return

        if event.type is RecognitionEventType.STARTED:
            if self._on_started is not None:
                self._on_started()
        elif event.type is RecognitionEventType.RESULT:
            text = event.transcript.strip()
            if text:
                self._accumulated = text
                self._restart_timer()
        elif event.type is RecognitionEventType.ENDED:
            self._cancel_timer()
            self._deliver()
        elif event.type is RecognitionEventType.ERROR:
            self._cancel_timer()
            if event.error in (None, "", NO_SPEECH):
                self._deliver()
                return
            logger.error(f"[VOICE][STT] recognition error: {event.error}")
            self._deliver()
            if self._recognizer is not None and self._recognizer.is_active:
                self._recognizer.abort()
            if self._on_error is not None:
                self._on_error(event.error)

    def _restart_timer(self) -> None:
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._silence_timer = loop.call_later(self._silence_timeout_s, self._on_silence)

    def _cancel_timer(self) -> None:
        if self._silence_timer is not None:
            self._silence_timer.cancel()
            self._silence_timer = None

    def _on_silence(self) -> None:
        self._silence_timer = None
        logger.info("[VOICE][STT] silence detected, stopping recognition")
        self.stop()

    def _deliver(self) -> None:
        if not self._session_open:
            return
        self._session_open = False
        text = self._accumulated
        self._accumulated = ""
        if self._on_utterance is not None:
            self._on_utterance(text)
