"""
Application configuration using pydantic-settings.

Loads configuration from environment variables and .env files.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # LLM Configuration (Ollama)
    llm_model_name: str = Field(
        default="gpt-oss:20b",
        description="Ollama model name to use (e.g., gpt-oss:20b)",
    )
    llm_timeout: int = Field(
        default=120,
        description="Timeout in seconds for LLM requests",
    )
    llm_max_retries: int = Field(
        default=1,
        description="Number of retries on LLM failure",
    )

    # Answer evaluation
    evaluator_timeout_s: float = Field(
        default=45.0,
        description="Upper bound in seconds for one answer evaluation round trip",
    )
    evaluator_base_url: str | None = Field(
        default=None,
        description="Base URL of a running API server; when set, sessions evaluate answers over HTTP",
    )
    outline_question_count: int = Field(
        default=7,
        description="Number of questions requested from the outline generator",
    )

    # Turn-taking timings
    silence_timeout_s: float = Field(
        default=3.0,
        description="Quiet interval after the last transcript update that ends an answer",
    )
    echo_delay_s: float = Field(
        default=0.5,
        description="Pause between the end of speech output and the start of listening",
    )
    stabilize_delay_s: float = Field(
        default=0.1,
        description="Pause before toggling the speech or recognition backend",
    )
    speech_max_retries: int = Field(
        default=3,
        description="Retries for speech output before the utterance is skipped",
    )
    speech_retry_delay_s: float = Field(
        default=1.0,
        description="Base backoff in seconds between speech output retries",
    )

    # Voice backends
    piper_bin: str = Field(default="piper", description="Path/name of the Piper TTS binary")
    piper_model: str | None = Field(default=None, description="Path to a Piper .onnx voice model")
    stt_model: str = Field(default="small", description="faster-whisper model size")
    stt_device: Literal["cpu", "cuda", "auto"] = Field(default="cpu", description="STT device")

    # Results
    qa_store_path: str = Field(
        default="./data/qa_store.json",
        description="JSON file holding the persisted question/answer pairs",
    )
    artifacts_dir: str = Field(
        default="data/interviews",
        description="Where per-session turn logs are written",
    )

    # Application
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns:
        Settings: Application settings instance.
    """
    return Settings()
