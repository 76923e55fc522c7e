"""Adapter around an OpenAI-compatible chat-completions endpoint."""

from __future__ import annotations

import json
import os
import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from ..logging import get_logger

_RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})


class LLMError(RuntimeError):
    """Raised when the inference API call fails or returns an unusable body."""

    def __init__(self, message: str, *, status: int | None = None, retryable: bool = False) -> None:
        super().__init__(message)
        self.status = status
        self.retryable = retryable


@dataclass
class LLMRequest:
    """Represents one chat-completion request."""

    prompt: str
    system: Optional[str]
    model: str
    temperature: Optional[float]
    max_tokens: Optional[int]
    base_url: str
    api_key: Optional[str]
    request_timeout: Optional[float]


class LLMRunner:
    """Executes prompts against the configured inference API."""

    DEFAULT_MODEL = "gpt-4o-mini"
    DEFAULT_BASE_URL = "https://api.openai.com/v1"
    ENV_MODEL_KEYS = ("ECHODOCS_LLM_MODEL", "OPENAI_MODEL")
    ENV_BASE_URL_KEYS = ("ECHODOCS_LLM_BASE_URL", "OPENAI_BASE_URL")

    def __init__(
        self,
        model: str | None = None,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        temperature: Optional[float] = 0.2,
        max_tokens: Optional[int] = None,
        request_timeout: Optional[float] = 60.0,
        max_retries: int = 1,
        retry_backoff: float = 1.0,
        runner: Callable[[LLMRequest], str] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.model = model or _first_env_value(self.ENV_MODEL_KEYS) or self.DEFAULT_MODEL
        self.base_url = (base_url or _first_env_value(self.ENV_BASE_URL_KEYS) or self.DEFAULT_BASE_URL).rstrip("/")
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.request_timeout = request_timeout
        self.max_retries = max(0, max_retries)
        self.retry_backoff = retry_backoff
        self._api_key = api_key
        self._runner = runner or self._http_runner
        self._sleep = sleep
        self.logger = get_logger("llm")

    def __repr__(self) -> str:
        return f"LLMRunner(model={self.model!r}, base_url={self.base_url!r})"

    def run(
        self,
        prompt: str,
        *,
        system: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        timeout: float | None = None,
    ) -> str:
        """Send the prompt and return the response text."""
        request = LLMRequest(
            prompt=prompt,
            system=system,
            model=self.model,
            temperature=temperature if temperature is not None else self.temperature,
            max_tokens=max_tokens if max_tokens is not None else self.max_tokens,
            base_url=self.base_url,
            api_key=self._api_key,
            request_timeout=timeout if timeout is not None else self.request_timeout,
        )
        attempt = 0
        while True:
            try:
                return self._runner(request)
            except LLMError as exc:
                if not exc.retryable or attempt >= self.max_retries:
                    raise
                attempt += 1
                delay = self.retry_backoff * attempt
                self.logger.debug(
                    "Inference call failed (%s); retry %d/%d in %.1fs", exc, attempt, self.max_retries, delay
                )
                self._sleep(delay)

    @staticmethod
    def _http_runner(request: LLMRequest) -> str:
        endpoint = f"{request.base_url}/chat/completions"
        payload: dict[str, object] = {
            "model": request.model,
            "messages": LLMRunner._build_messages(request.system, request.prompt),
        }
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        if request.max_tokens is not None:
            payload["max_tokens"] = request.max_tokens

        data = json.dumps(payload).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        if request.api_key:
            headers["Authorization"] = f"Bearer {request.api_key}"

        http_request = Request(endpoint, data=data, headers=headers, method="POST")
        timeout = request.request_timeout or 60.0

        try:
            with urlopen(http_request, timeout=timeout) as response:  # type: ignore[arg-type]
                raw = response.read()
        except HTTPError as exc:  # pragma: no cover - depends on runtime
            detail = exc.read().decode("utf-8", errors="ignore") if hasattr(exc, "read") else ""
            message = LLMRunner._extract_error(detail) or exc.reason
            raise LLMError(
                f"Inference API failed with status {exc.code}: {message}",
                status=exc.code,
                retryable=exc.code in _RETRYABLE_STATUSES,
            ) from exc
        except URLError as exc:  # pragma: no cover - depends on runtime
            raise LLMError(f"Inference API unreachable: {exc.reason}", retryable=True) from exc
        except TimeoutError as exc:  # pragma: no cover - depends on runtime
            raise LLMError(f"Inference API timed out after {timeout:.0f}s") from exc

        try:
            response_payload = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise LLMError("Inference API returned invalid JSON") from exc

        content = LLMRunner._extract_content(response_payload)
        if not content:
            raise LLMError("Inference API returned an empty response")
        return content.strip()

    @staticmethod
    def _build_messages(system: str | None, prompt: str) -> list[dict[str, str]]:
        messages: list[dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        return messages

    @staticmethod
    def _extract_content(payload: object) -> str:
        if not isinstance(payload, dict):
            return ""
        choices = payload.get("choices")
        if not isinstance(choices, list) or not choices:
            return ""
        first = choices[0]
        if not isinstance(first, dict):
            return ""
        message = first.get("message")
        if isinstance(message, dict):
            content = message.get("content")
            if isinstance(content, str):
                return content
        text = first.get("text")
        if isinstance(text, str):
            return text
        return ""

    @staticmethod
    def _extract_error(detail: str) -> str:
        if not detail.strip():
            return ""
        try:
            payload = json.loads(detail)
        except json.JSONDecodeError:
            return detail.strip()[:200]
        error = payload.get("error") if isinstance(payload, dict) else None
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
        return detail.strip()[:200]


def _first_env_value(keys: Sequence[str]) -> str | None:
    for key in keys:
        value = os.getenv(key)
        if value:
            return value
    return None


__all__ = ["LLMError", "LLMRequest", "LLMRunner"]
