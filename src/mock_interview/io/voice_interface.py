"""Voice-based interview interface.

Same session as text mode, but questions are spoken with Piper and answers
are transcribed from the microphone with faster-whisper. Ctrl-C leaves the
interview.
"""

from __future__ import annotations

import shutil
from typing import TYPE_CHECKING

from mock_interview.io.text_interface import InterviewInterface
from mock_interview.voice.stt import SpeechInputDriver
from mock_interview.voice.tts import ConsoleSynthesizer, SpeechOutputDriver, SpeechSynthesizer

if TYPE_CHECKING:
    from mock_interview.voice.audio_io import AudioIO


class VoiceInterface(InterviewInterface):
    def __init__(self, *, audio: "AudioIO | None" = None, **kwargs) -> None:
        super().__init__(**kwargs)

        try:
            from mock_interview.voice.audio_io import AudioIO, AudioIOConfig
            from mock_interview.voice.stt import STTConfig, WhisperRecognizer
            from mock_interview.voice.tts import PiperSynthesizer, TTSConfig
        except ModuleNotFoundError as e:
            raise RuntimeError(
                "Voice mode dependencies are not installed. Install with: pip install -e '.[voice]'. "
                "Also install `piper` (CLI) and download a Piper .onnx voice model."
            ) from e

        self._audio = audio or AudioIO(AudioIOConfig())
        self._synthesizer = PiperSynthesizer(
            self._audio,
            TTSConfig(piper_bin=self._settings.piper_bin, model_path=self._settings.piper_model),
        )
        self._recognizer = WhisperRecognizer(
            self._audio,
            STTConfig(model_size=self._settings.stt_model, device=self._settings.stt_device),
        )

    def _banner(self) -> str:
        return "Mock Interview (voice mode) - press Ctrl-C to leave"

    def _build_drivers(self) -> tuple[SpeechOutputDriver, SpeechInputDriver]:
        synthesizer: SpeechSynthesizer = self._synthesizer
        ok, reason = self._synthesizer.is_available()
        if ok:
            piper_path = shutil.which(self._synthesizer.config.piper_bin)
            print(f"Interviewer voice: ENABLED (piper='{piper_path}', model='{self._synthesizer.config.model_path}')")
        else:
            print(
                "Interviewer voice: DISABLED. "
                "Set PIPER_MODEL=/path/to/voice.onnx and PIPER_BIN=/path/to/piper-tts-binary. "
                f"Reason: {reason}"
            )
            synthesizer = ConsoleSynthesizer()

        speech_output = SpeechOutputDriver(
            synthesizer,
            max_retries=self._settings.speech_max_retries,
            retry_delay_s=self._settings.speech_retry_delay_s,
            stabilize_delay_s=self._settings.stabilize_delay_s,
        )
        speech_input = SpeechInputDriver(
            self._recognizer,
            silence_timeout_s=self._settings.silence_timeout_s,
        )
        return speech_output, speech_input
