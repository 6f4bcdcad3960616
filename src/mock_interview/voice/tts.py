"""Speech output.

`SpeechOutputDriver` is what the dialogue controller talks to. It wraps a
platform `SpeechSynthesizer` with voice-readiness gating and bounded retries
so that a single utterance can never stall the interview loop.

Backends:
- `PiperSynthesizer`: offline synthesis through the `piper` CLI, played with
  `AudioIO`.
- `ConsoleSynthesizer`: prints the utterance (text mode, tests).
"""

from __future__ import annotations

import asyncio
import logging
import re
import shutil
import subprocess
import sys
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, TextIO

if TYPE_CHECKING:
    from mock_interview.voice.audio_io import AudioIO

logger = logging.getLogger(__name__)


class SpeechSynthesisError(RuntimeError):
    """Raised by a synthesizer when an utterance could not be produced."""


class SpeechSynthesizer(ABC):
    """Platform text-to-speech capability."""

    @abstractmethod
    def voices_ready(self) -> bool:
        """Whether a voice is loaded and speech can start now."""
        ...

    @abstractmethod
    async def speak(self, text: str) -> None:
        """
        Speak ``text`` and return once playback finished or was cancelled.

        Raises:
            SpeechSynthesisError: If the utterance failed.
        """
        ...

    @abstractmethod
    def cancel(self) -> None:
        """Stop the current utterance immediately."""
        ...


class ConsoleSynthesizer(SpeechSynthesizer):
    """Writes utterances to a text stream instead of speaking them."""

    def __init__(self, stream: TextIO | None = None, label: str = "Interviewer") -> None:
        self._stream = stream
        self._label = label
        self.spoken: list[str] = []

    def voices_ready(self) -> bool:
        return True

    async def speak(self, text: str) -> None:
        self.spoken.append(text)
        stream = self._stream or sys.stdout
        print(f"\n[{self._label}] {text}\n", file=stream, flush=True)

    def cancel(self) -> None:
        pass


@dataclass(frozen=True)
class TTSConfig:
    piper_bin: str = "piper"
    model_path: str | None = None  # path to *.onnx
    speaker_id: int | None = None
    max_chars_per_chunk: int = 350
    timeout_s: float = 60.0


class PiperSynthesizer(SpeechSynthesizer):
    def __init__(self, audio: AudioIO, config: TTSConfig | None = None) -> None:
        self._audio = audio
        self._config = config or TTSConfig()
        self._validated_piper_path: str | None = None
        self._availability: tuple[bool, str] | None = None
        self._cancelled = False

    @property
    def config(self) -> TTSConfig:
        return self._config

    def is_available(self) -> tuple[bool, str]:
        if self._availability is None:
            try:
                _ = self._require_piper()
                self._availability = (True, "ok")
            except RuntimeError as e:
                self._availability = (False, str(e))
        return self._availability

    def voices_ready(self) -> bool:
        return self.is_available()[0]

    def _looks_like_piper_tts(self, piper_path: str) -> bool:
        try:
            r = subprocess.run(
                [piper_path, "--help"],
                check=False,
                text=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                timeout=5,
            )
        except (OSError, subprocess.SubprocessError):
            return False

        out = (r.stdout or "").lower()
        # Piper TTS CLI typically supports these flags.
        return ("--model" in out or "--output_file" in out) and "application options" not in out

    def _require_piper(self) -> str:
        if self._validated_piper_path:
            return self._validated_piper_path

        p = shutil.which(self._config.piper_bin)
        if not p:  # pragma: no cover
            raise RuntimeError(
                "piper CLI not found. Install piper (binary) and ensure it's on PATH, "
                "or set PIPER_BIN."
            )
        if not self._looks_like_piper_tts(p):  # pragma: no cover
            raise RuntimeError(
                "Found a `piper` binary, but it does not look like the Piper TTS CLI (common on Linux: /usr/bin/piper is a GTK app). "
                "Install Piper TTS and set PIPER_BIN to that binary path (e.g., ~/piper/piper), then retry."
            )
        if not self._config.model_path:  # pragma: no cover
            raise RuntimeError("Piper model path not configured. Set PIPER_MODEL=/path/to/voice.onnx.")

        self._validated_piper_path = p
        return p

    def _chunk_text(self, text: str) -> list[str]:
        t = (text or "").strip()
        if not t:
            return []

        # Split on sentence-ish boundaries, then re-pack into chunks.
        parts = [p.strip() for p in re.split(r"(?<=[.!?])\s+", t) if p.strip()]
        chunks: list[str] = []
        current = ""
        for p in parts:
            if not current:
                current = p
                continue
            if len(current) + 1 + len(p) <= self._config.max_chars_per_chunk:
                current = current + " " + p
            else:
                chunks.append(current)
                current = p
        if current:
            chunks.append(current)

        return chunks

    def _synthesize_chunk(self, piper_bin: str, chunk: str, wav_path: Path) -> None:
        cmd = [piper_bin, "--model", str(self._config.model_path), "--output_file", str(wav_path)]
        if self._config.speaker_id is not None:
            cmd += ["--speaker", str(self._config.speaker_id)]
        try:
            subprocess.run(
                cmd,
                input=chunk,
                text=True,
                check=True,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                timeout=self._config.timeout_s,
            )
        except subprocess.TimeoutExpired as e:  # pragma: no cover
            raise SpeechSynthesisError(
                f"piper timed out after {self._config.timeout_s:.1f}s. model={self._config.model_path!s}"
            ) from e
        except subprocess.CalledProcessError as e:  # pragma: no cover
            stderr = (e.stderr or "").strip()
            raise SpeechSynthesisError(
                f"piper failed (exit={e.returncode}). model={self._config.model_path!s}. stderr={stderr or '<empty>'}"
            ) from e

    async def speak(self, text: str) -> None:
        try:
            piper_bin = self._require_piper()
        except RuntimeError as e:
            raise SpeechSynthesisError(str(e)) from e

        self._cancelled = False
        with tempfile.TemporaryDirectory(prefix="mock_interview_tts_") as tmp:
            for idx, chunk in enumerate(self._chunk_text(text)):
                if self._cancelled:
                    return
                wav_path = Path(tmp) / f"utterance_{idx:02d}.wav"
                await asyncio.to_thread(self._synthesize_chunk, piper_bin, chunk, wav_path)
                if self._cancelled:
                    return
                try:
                    stopped = await self._audio.play_wav(wav_path)
                except RuntimeError as e:
                    raise SpeechSynthesisError(f"playback failed: {e}") from e
                if stopped:
                    return

    def cancel(self) -> None:
        self._cancelled = True
        self._audio.stop_playback()


class SpeechOutputDriver:
    """
    Speaks one utterance at a time for the dialogue controller.

    ``speak`` always returns: True once the utterance was spoken, False when
    it was skipped (no synthesizer, voices never loaded, retries exhausted or
    cancelled). Synthesis errors are never raised to the caller.
    """

    def __init__(
        self,
        synthesizer: SpeechSynthesizer | None,
        *,
        max_retries: int = 3,
        retry_delay_s: float = 1.0,
        stabilize_delay_s: float = 0.1,
    ) -> None:
        self._synthesizer = synthesizer
        self._max_retries = max_retries
        self._retry_delay_s = retry_delay_s
        self._stabilize_delay_s = stabilize_delay_s
        self._is_speaking = False
        self._cancelled = False

    @property
    def is_available(self) -> bool:
        return self._synthesizer is not None

    @property
    def is_speaking(self) -> bool:
        return self._is_speaking

    def _backoff(self, attempt: int) -> float:
        return self._retry_delay_s * (attempt + 1)

    async def speak(self, text: str) -> bool:
        if self._synthesizer is None:
            logger.warning("[VOICE][TTS] speech synthesis not supported; skipping utterance")
            return False

        self._cancelled = False
        attempt = 0
        while True:
            if self._cancelled:
                return False

            if not self._synthesizer.voices_ready():
                if attempt >= self._max_retries:
                    logger.error("[VOICE][TTS] no voices available after retries, skipping speech")
                    return False
                logger.warning(f"[VOICE][TTS] voices not loaded, retrying (attempt {attempt + 1})")
                await asyncio.sleep(self._backoff(attempt))
                attempt += 1
                continue

            # Rapid cancel/speak toggling trips some backends.
            await asyncio.sleep(self._stabilize_delay_s)
            if self._cancelled:
                return False

            self._is_speaking = True
            try:
                await self._synthesizer.speak(text)
            except SpeechSynthesisError as e:
                logger.error(f"[VOICE][TTS] speech error: {e} (attempt {attempt + 1})")
                if attempt >= self._max_retries:
                    logger.error("[VOICE][TTS] speech failed after retries, skipping")
                    return False
                await asyncio.sleep(self._backoff(attempt))
                attempt += 1
                continue
            finally:
                self._is_speaking = False

            return not self._cancelled

    def cancel(self) -> None:
        """Stop speaking now. Any pending retry is abandoned."""
        self._cancelled = True
        if self._synthesizer is not None:
            self._synthesizer.cancel()
