"""Voice subsystem.

Two driver abstractions sit between the dialogue controller and the platform:

synthesizer -> SpeechOutputDriver -> controller -> SpeechInputDriver <- recognizer

The controller remains the single authority for turn-taking; the drivers only
retry, gate and debounce.
"""

from mock_interview.voice.stt import (
    NO_SPEECH,
    ConsoleRecognizer,
    RecognitionActiveError,
    RecognitionEvent,
    RecognitionEventType,
    SpeechInputDriver,
    SpeechRecognizer,
    STTConfig,
    WhisperRecognizer,
)
from mock_interview.voice.tts import (
    ConsoleSynthesizer,
    PiperSynthesizer,
    SpeechOutputDriver,
    SpeechSynthesisError,
    SpeechSynthesizer,
    TTSConfig,
)

__all__ = [
    "NO_SPEECH",
    "ConsoleRecognizer",
    "RecognitionActiveError",
    "RecognitionEvent",
    "RecognitionEventType",
    "SpeechInputDriver",
    "SpeechRecognizer",
    "STTConfig",
    "WhisperRecognizer",
    "ConsoleSynthesizer",
    "PiperSynthesizer",
    "SpeechOutputDriver",
    "SpeechSynthesisError",
    "SpeechSynthesizer",
    "TTSConfig",
]


# numpy is only needed for microphone capture. Keep import-time lightweight.
try:
    from mock_interview.voice.audio_io import AudioIO, AudioIOConfig

    __all__.extend(["AudioIO", "AudioIOConfig"])
except (ModuleNotFoundError, ImportError):
    pass
