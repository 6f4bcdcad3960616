"""
LLM client abstraction.

Provides a unified interface for interacting with Ollama locally, plus the
single decoding path every LLM boundary uses to turn model output into JSON.
"""

import ast
import asyncio
import json
import logging
import re
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, Field

from mock_interview.config import get_settings

logger = logging.getLogger(__name__)

# Default model for Ollama
DEFAULT_OLLAMA_MODEL = "gpt-oss:20b"

_FENCED_JSON_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


class Message(BaseModel):
    """A message in a conversation."""

    role: str = Field(..., description="Role of the speaker (system, user, assistant)")
    content: str = Field(..., description="Message content")


class LLMResponse(BaseModel):
    """Response from an LLM."""

    content: str = Field(..., description="Generated text content")
    finish_reason: str = Field(default="stop", description="Reason for completion")
    model: str = Field(default="", description="Model used for generation")
    raw_response: dict[str, Any] = Field(
        default_factory=dict,
        description="Raw response from the CLI",
    )

    @property
    def failed(self) -> bool:
        return self.finish_reason == "error"

    @property
    def error(self) -> str:
        return str(self.raw_response.get("error", ""))


class OllamaError(Exception):
    """Exception raised when Ollama CLI fails."""

    def __init__(self, message: str, return_code: int | None = None, stderr: str = "") -> None:
        super().__init__(message)
        self.return_code = return_code
        self.stderr = stderr


@dataclass(frozen=True)
class JsonDecodeResult:
    """Outcome of decoding model output: either a payload or a failure reason."""

    payload: dict[str, Any] | list[Any] | None = None
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.payload is not None

    def as_dict(self) -> dict[str, Any]:
        """Return the payload as an object; arrays are wrapped under ``items``."""
        if isinstance(self.payload, dict):
            return self.payload
        if isinstance(self.payload, list):
            return {"items": self.payload}
        return {}


def _fix_json_string(json_str: str) -> str:
    """Repair the usual LLM damage: fences, curly quotes, trailing commas, bare keys."""
    if not json_str:
        return ""

    result = json_str.strip()

    result = re.sub(r"^```(?:json)?\s*", "", result, flags=re.IGNORECASE)
    result = re.sub(r"\s*```$", "", result)

    result = (
        result.replace("“", '"')
        .replace("”", '"')
        .replace("‘", "'")
        .replace("’", "'")
    )

    result = re.sub(r",(\s*[}\]])", r"\1", result)

    result = re.sub(r"\bNone\b", "null", result)
    result = re.sub(r"\bTrue\b", "true", result)
    result = re.sub(r"\bFalse\b", "false", result)

    # Only targets object keys right after { or , to avoid mangling values.
    result = re.sub(
        r"([\{,]\s*)([A-Za-z_][A-Za-z0-9_\-]*)(\s*:)",
        r'\1"\2"\3',
        result,
    )

    if result.count("'") > 0 and result.count('"') == 0:
        result = result.replace("'", '"')

    return result


def _coerce_to_json_types(obj: Any) -> Any:
    if obj is ...:
        return None
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj
    if isinstance(obj, dict):
        return {str(k): _coerce_to_json_types(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [_coerce_to_json_types(v) for v in obj]
    return str(obj)


def _parse_json_loose(raw: str) -> dict[str, Any] | list[Any] | None:
    """Parse JSON with best-effort repair. Returns a dict/list on success, else None."""
    if not raw:
        return None

    cleaned = _fix_json_string(raw)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, (dict, list)):
        return parsed

    try:
        obj = ast.literal_eval(raw.strip())
    except Exception:
        try:
            obj = ast.literal_eval(cleaned)
        except Exception:
            return None

    if not isinstance(obj, (dict, list, tuple, set)):
        return None

    try:
        return json.loads(json.dumps(_coerce_to_json_types(obj)))
    except (TypeError, ValueError):
        return None


def _extract_bracketed(content: str) -> str | None:
    """Return the first balanced {...} or [...] span in ``content``."""
    start_idx = content.find("{")
    if start_idx == -1:
        start_idx = content.find("[")
    if start_idx == -1:
        return None

    open_bracket = content[start_idx]
    close_bracket = "}" if open_bracket == "{" else "]"
    depth = 0
    for i, char in enumerate(content[start_idx:], start=start_idx):
        if char == open_bracket:
            depth += 1
        elif char == close_bracket:
            depth -= 1
            if depth == 0:
                return content[start_idx : i + 1]
    return content[start_idx:]


def decode_json_payload(text: str | None) -> JsonDecodeResult:
    """
    Decode JSON from model output.

    Order: fenced ```json block, then the whole text as raw JSON, then the
    first bracketed span with loose repair.

    Args:
        text: Raw model output.

    Returns:
        A result carrying the decoded payload, or the reason decoding failed.
    """
    content = (text or "").strip()
    if not content:
        return JsonDecodeResult(error="empty response")

    fenced = _FENCED_JSON_RE.search(content)
    if fenced:
        try:
            parsed = json.loads(fenced.group(1).strip())
            if isinstance(parsed, (dict, list)):
                return JsonDecodeResult(payload=parsed)
        except json.JSONDecodeError:
            pass

    try:
        parsed = json.loads(content)
        if isinstance(parsed, (dict, list)):
            return JsonDecodeResult(payload=parsed)
    except json.JSONDecodeError:
        pass

    candidates = [fenced.group(1)] if fenced else []
    span = _extract_bracketed(content)
    if span:
        candidates.append(span)
    candidates.append(content)

    for candidate in candidates:
        parsed = _parse_json_loose(candidate)
        if parsed is not None:
            return JsonDecodeResult(payload=parsed)

    logger.debug(f"Undecodable model output: {content[:500]}")
    return JsonDecodeResult(error="no JSON object found in response")


class LLMClientBase(ABC):
    """Abstract base class for LLM clients."""

    @abstractmethod
    async def chat(
        self,
        messages: list[Message],
        temperature: float = 0.7,
        **kwargs: Any,
    ) -> LLMResponse:
        """
        Generate a chat completion.

        Args:
            messages: Conversation history.
            temperature: Sampling temperature.
            **kwargs: Additional model-specific parameters.

        Returns:
            Generated response. Transport failures are reported with
            ``finish_reason == "error"`` rather than raised.
        """
        ...

    async def chat_json(
        self,
        messages: list[Message],
        temperature: float = 0.2,
        **kwargs: Any,
    ) -> tuple[LLMResponse, JsonDecodeResult]:
        """Chat with a JSON-only instruction and decode the reply."""
        instruction = Message(
            role="system",
            content="You must respond with valid JSON only. No additional text or explanation.",
        )
        response = await self.chat([instruction, *messages], temperature, **kwargs)
        if response.failed:
            return response, JsonDecodeResult(error=response.error or "LLM request failed")
        return response, decode_json_payload(response.content)

    async def chat_with_json(
        self,
        messages: list[Message],
        temperature: float = 0.2,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """
        Generate a chat completion with JSON structured output.

        Returns:
            Parsed JSON response, or empty dict on error.
        """
        _, result = await self.chat_json(messages, temperature, **kwargs)
        if not result.ok:
            logger.warning(f"JSON chat failed: {result.error}")
        return result.as_dict()


class LLMClient(LLMClientBase):
    """
    Ollama-based LLM client.

    All generation happens through subprocess calls to `ollama run`.
    """

    def __init__(
        self,
        model: str | None = None,
        max_retries: int | None = None,
        timeout: int | None = None,
    ) -> None:
        """
        Initialize the Ollama LLM client.

        Args:
            model: Model name (defaults to the configured model).
            max_retries: Number of retries on failure.
            timeout: Timeout in seconds for Ollama commands.
        """
        settings = get_settings()
        self._model = model or settings.llm_model_name or DEFAULT_OLLAMA_MODEL
        self._max_retries = settings.llm_max_retries if max_retries is None else max_retries
        self._timeout = timeout or settings.llm_timeout

        logger.info(f"Initialized Ollama LLM client with model: {self._model}")

    @property
    def model(self) -> str:
        """Get the model name."""
        return self._model

    def _build_prompt_from_messages(self, messages: list[Message]) -> str:
        prompt_parts: list[str] = []
        for msg in messages:
            role = msg.role.lower()
            prompt_parts.append(f"[{role.upper()}]\n{msg.content.strip()}\n")

        # Marks where the assistant should respond.
        prompt_parts.append("[ASSISTANT]\n")
        return "\n".join(prompt_parts)

    def _run_ollama_sync(self, prompt: str) -> str:
        """
        Run Ollama CLI synchronously with retry logic.

        Raises:
            OllamaError: If Ollama fails after all retries.
        """
        cmd = ["ollama", "run", self._model]

        last_error: Exception | None = None
        attempts = 0

        while attempts <= self._max_retries:
            attempts += 1
            try:
                logger.debug(f"Running Ollama (attempt {attempts}): {' '.join(cmd)}")
                process = subprocess.run(
                    cmd,
                    input=prompt,
                    capture_output=True,
                    text=True,
                    timeout=self._timeout,
                )

                if process.returncode != 0:
                    error_msg = process.stderr.strip() or f"Exit code: {process.returncode}"
                    logger.warning(f"Ollama failed (attempt {attempts}): {error_msg}")
                    last_error = OllamaError(
                        f"Ollama exited with code {process.returncode}",
                        return_code=process.returncode,
                        stderr=process.stderr,
                    )
                    continue

                response = process.stdout.strip()
                logger.debug(f"Ollama response length: {len(response)} chars")
                return response

            except subprocess.TimeoutExpired:
                logger.warning(f"Ollama timed out after {self._timeout}s (attempt {attempts})")
                last_error = OllamaError(f"Ollama timed out after {self._timeout} seconds")

            except FileNotFoundError:
                error_msg = "Ollama CLI not found. Please install Ollama: https://ollama.ai"
                logger.error(error_msg)
                raise OllamaError(error_msg)

        raise last_error or OllamaError("Ollama failed after all retries")

    async def chat(
        self,
        messages: list[Message],
        temperature: float = 0.7,
        **kwargs: Any,
    ) -> LLMResponse:
        prompt = self._build_prompt_from_messages(messages)
        try:
            response_text = await asyncio.to_thread(self._run_ollama_sync, prompt)
        except OllamaError as e:
            logger.error(f"Ollama chat failed: {e}")
            return LLMResponse(
                content="",
                finish_reason="error",
                model=self._model,
                raw_response={"error": str(e)},
            )

        return LLMResponse(
            content=response_text,
            finish_reason="stop",
            model=self._model,
            raw_response={"prompt": prompt, "response": response_text},
        )

    async def complete(self, prompt: str, temperature: float = 0.7, **kwargs: Any) -> LLMResponse:
        """Generate a text completion from a single user prompt."""
        return await self.chat([Message(role="user", content=prompt)], temperature, **kwargs)
