import asyncio

import numpy as np
import pytest

from mock_interview.voice.audio_io import AudioIO, AudioIOConfig
from mock_interview.voice.stt import RecognitionEventType, STTConfig, WhisperRecognizer
from mock_interview.voice.tts import PiperSynthesizer, SpeechSynthesisError, TTSConfig


class FakeAudio:
    """Microphone stand-in: always has one short buffer of audio."""

    def __init__(self) -> None:
        self.recordings = 0

    async def start_recording(self) -> None:
        self.recordings += 1

    def snapshot(self) -> np.ndarray:
        return np.ones((1600, 1), dtype=np.int16)

    async def stop_recording(self) -> np.ndarray:
        return self.snapshot()


def _recognizer(transcript: str) -> tuple[WhisperRecognizer, list]:
    recognizer = WhisperRecognizer(FakeAudio(), STTConfig(poll_interval_s=0.01, no_speech_timeout_s=0.05))
    recognizer._transcribe = lambda audio: transcript  # type: ignore[method-assign]
    events: list = []
    recognizer.set_listener(events.append)
    return recognizer, events


async def _until_inactive(recognizer: WhisperRecognizer) -> None:
    async def _poll() -> None:
        while recognizer.is_active:
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout=2)


@pytest.mark.asyncio
async def test_whisper_session_reports_result_then_ends_on_quiet() -> None:
    recognizer, events = _recognizer("I like Python")

    recognizer.start()
    await _until_inactive(recognizer)
    await asyncio.sleep(0.02)

    assert [e.type for e in events] == [
        RecognitionEventType.STARTED,
        RecognitionEventType.RESULT,
        RecognitionEventType.ENDED,
    ]
    assert events[1].transcript == "I like Python"


@pytest.mark.asyncio
async def test_whisper_reports_no_speech() -> None:
    recognizer, events = _recognizer("")

    recognizer.start()
    await _until_inactive(recognizer)
    await asyncio.sleep(0.02)

    assert [e.type for e in events] == [
        RecognitionEventType.STARTED,
        RecognitionEventType.ERROR,
        RecognitionEventType.ENDED,
    ]
    assert events[1].error == "no-speech"


@pytest.mark.asyncio
async def test_aborted_session_does_not_leak_into_the_next() -> None:
    recognizer, events = _recognizer("hello")

    recognizer.start()
    await asyncio.sleep(0.03)
    recognizer.abort()
    recognizer.start()
    await _until_inactive(recognizer)
    await asyncio.sleep(0.02)

    assert sum(1 for e in events if e.type is RecognitionEventType.ENDED) == 1
    assert events[-1].type is RecognitionEventType.ENDED


def test_piper_unavailable_without_binary() -> None:
    synth = PiperSynthesizer(audio=None, config=TTSConfig(piper_bin="no-such-piper-binary-xyz"))  # type: ignore[arg-type]

    ok, reason = synth.is_available()

    assert not ok
    assert "piper CLI not found" in reason
    assert not synth.voices_ready()


@pytest.mark.asyncio
async def test_piper_speak_without_binary_raises_synthesis_error() -> None:
    synth = PiperSynthesizer(audio=None, config=TTSConfig(piper_bin="no-such-piper-binary-xyz"))  # type: ignore[arg-type]
    with pytest.raises(SpeechSynthesisError):
        await synth.speak("Hello")


def test_piper_chunks_on_sentence_boundaries() -> None:
    synth = PiperSynthesizer(audio=None, config=TTSConfig(max_chars_per_chunk=20))  # type: ignore[arg-type]

    chunks = synth._chunk_text("First one. Second one. A much longer third sentence!")

    assert chunks == ["First one.", "Second one.", "A much longer third sentence!"]
    assert synth._chunk_text("   ") == []


def test_wav_round_trip(tmp_path) -> None:
    audio = AudioIO(AudioIOConfig(sample_rate=8000))
    samples = np.arange(-50, 50, dtype=np.int16)

    path = audio.write_wav(tmp_path / "out" / "clip.wav", samples)
    decoded, rate = audio.read_wav(path)

    assert rate == 8000
    assert decoded.shape == (100, 1)
    assert np.array_equal(decoded[:, 0], samples)
    assert audio.snapshot().shape == (0, 1)
