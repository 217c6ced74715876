from __future__ import annotations

import json
import os
import time
from typing import Any, Callable, Iterator

import requests

from genetic_models import GenerationResult

GEMINI_API_ROOT = "https://generativelanguage.googleapis.com/v1beta/models"
DEFAULT_MODEL = "gemini-2.0-flash"
REQUEST_TIMEOUT = (5, 90)
API_KEY_ENV = "GEMINI_API_KEY"

MOCK_RESPONSES: dict[str, str] = {
    "default": (
        "[Mock response] No Gemini API key is configured, so this is a simulated answer. "
        "Add a key to get real explanations."
    ),
    "recommendation": (
        "[Mock response] Based on your genetic profile, consider discussing these findings "
        "with a healthcare provider. Genetic information is only one part of your overall health picture."
    ),
    "explain": (
        "[Mock response] This marker is associated with how your body handles certain medications "
        "or nutrients. Always check with your doctor before changing any medication."
    ),
    "lifestyle": (
        "[Mock response] Helpful habits include regular cardiovascular exercise, a "
        "Mediterranean-style diet, stress management and 7-9 hours of sleep."
    ),
}

TokenCallback = Callable[[str], None]
ErrorCallback = Callable[[Exception], None]


class GeminiError(RuntimeError):
    """A whole Gemini request failed (network, HTTP status or blocked prompt)."""


def _mock_key(prompt: str) -> str:
    lowered = prompt.lower()
    if "recommend" in lowered:
        return "recommendation"
    if "explain" in lowered or "what" in lowered:
        return "explain"
    if "lifestyle" in lowered or "plan" in lowered:
        return "lifestyle"
    return "default"


def build_prompt_with_context(prompt: str, context: dict[str, Any] | None) -> str:
    if not context:
        return prompt
    lines: list[str] = []
    if context.get("page"):
        lines.append(f"Current page: {context['page']}")
    markers = context.get("markers") or []
    if markers:
        lines.append("")
        lines.append("Top genetic markers:")
        for marker in markers[:5]:
            lines.append(f"- {marker.get('gene', '')} ({marker.get('rsid', '')}): {marker.get('genotype', '')}")
    recommendations = context.get("recommendations") or []
    if recommendations:
        lines.append("")
        lines.append("Recent recommendations:")
        for rec in recommendations[:3]:
            lines.append(f"- {rec.get('title', '')}")
    if context.get("user_profile"):
        lines.append("")
        lines.append(f"User profile: {json.dumps(context['user_profile'])}")
    if not lines:
        return prompt
    context_text = "\n".join(lines)
    return f"{context_text}\n\n---\nUser question: {prompt}"


def _candidate_text(data: dict[str, Any]) -> tuple[str, str | None]:
    candidates = data.get("candidates") or []
    if not candidates:
        return "", None
    candidate = candidates[0]
    parts = candidate.get("content", {}).get("parts", [])
    text = "".join(part.get("text", "") for part in parts)
    return text, candidate.get("finishReason")


def _iter_sse_payloads(response: requests.Response) -> Iterator[dict[str, Any]]:
    for raw_line in response.iter_lines(decode_unicode=True):
        if not raw_line or not raw_line.startswith("data:"):
            continue
        payload = raw_line[len("data:"):].strip()
        if not payload:
            continue
        yield json.loads(payload)


class GeminiClient:
    """Text-generation collaborator used to phrase findings in plain language.

    Without an API key every call is answered by a labeled mock response, so
    callers never have to special-case a missing credential.
    """

    def __init__(
        self,
        api_key: str | None = None,
        *,
        model: str = DEFAULT_MODEL,
        mock_mode: bool = False,
        session: requests.Session | None = None,
        mock_token_delay: float = 0.05,
    ) -> None:
        self.api_key = api_key or ""
        self.model = model
        self.mock_mode = mock_mode
        self.session = session or requests.Session()
        self.mock_token_delay = mock_token_delay

    @classmethod
    def from_env(cls, **kwargs: Any) -> GeminiClient:
        return cls(os.environ.get(API_KEY_ENV), **kwargs)

    def set_api_key(self, key: str | None) -> None:
        self.api_key = key or ""

    def clear_api_key(self) -> None:
        self.api_key = ""

    def has_api_key(self) -> bool:
        return bool(self.api_key)

    def set_mock_mode(self, enabled: bool) -> None:
        self.mock_mode = enabled

    def generate(
        self,
        prompt: str,
        *,
        stream: bool = False,
        context: dict[str, Any] | None = None,
        temperature: float = 0.7,
        max_tokens: int = 2048,
        on_token: TokenCallback | None = None,
        on_complete: TokenCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> GenerationResult:
        if self.mock_mode or not self.has_api_key():
            return self.mock_generate(prompt, on_token=on_token, on_complete=on_complete)

        full_prompt = build_prompt_with_context(prompt, context)
        payload = {
            "contents": [{"role": "user", "parts": [{"text": full_prompt}]}],
            "generationConfig": {
                "temperature": temperature,
                "maxOutputTokens": max_tokens,
                "topP": 0.95,
                "topK": 40,
            },
        }
        try:
            if stream:
                return self._stream_generate(payload, on_token=on_token, on_complete=on_complete)
            return self._generate_once(payload)
        except (requests.RequestException, ValueError, GeminiError) as exc:
            if on_error:
                on_error(exc)
            if isinstance(exc, GeminiError):
                raise
            raise GeminiError(f"Gemini request failed: {exc}") from exc

    def _generate_once(self, payload: dict[str, Any]) -> GenerationResult:
        url = f"{GEMINI_API_ROOT}/{self.model}:generateContent"
        response = self.session.post(
            url,
            params={"key": self.api_key},
            json=payload,
            timeout=REQUEST_TIMEOUT,
        )
        response.raise_for_status()
        data = response.json()
        if not data.get("candidates"):
            reason = data.get("promptFeedback", {}).get("blockReason", "unknown")
            raise GeminiError(f"Gemini response was blocked (reason: {reason}).")
        text, finish_reason = _candidate_text(data)
        return {"text": text, "finish_reason": finish_reason}

    def _stream_generate(
        self,
        payload: dict[str, Any],
        *,
        on_token: TokenCallback | None,
        on_complete: TokenCallback | None,
    ) -> GenerationResult:
        url = f"{GEMINI_API_ROOT}/{self.model}:streamGenerateContent"
        chunks: list[str] = []
        finish_reason: str | None = None
        with self.session.post(
            url,
            params={"key": self.api_key, "alt": "sse"},
            json=payload,
            timeout=REQUEST_TIMEOUT,
            stream=True,
        ) as response:
            response.raise_for_status()
            for data in _iter_sse_payloads(response):
                text, reason = _candidate_text(data)
                if reason:
                    finish_reason = reason
                if not text:
                    continue
                chunks.append(text)
                if on_token:
                    on_token(text)
        full_text = "".join(chunks)
        if on_complete:
            on_complete(full_text)
        return {"text": full_text, "finish_reason": finish_reason}

    def mock_generate(
        self,
        prompt: str,
        *,
        on_token: TokenCallback | None = None,
        on_complete: TokenCallback | None = None,
    ) -> GenerationResult:
        text = MOCK_RESPONSES[_mock_key(prompt)]
        if on_token:
            for index, word in enumerate(text.split(" ")):
                on_token(word if index == 0 else f" {word}")
                if self.mock_token_delay:
                    time.sleep(self.mock_token_delay)
        if on_complete:
            on_complete(text)
        return {"text": text, "finish_reason": "MOCK"}
