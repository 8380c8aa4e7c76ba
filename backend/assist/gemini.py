from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from typing import Any

import httpx

from .templates import build_prompt

_PLACEHOLDER_KEYS = {"your_gemini_api_key_here"}
_DEFAULT_MODEL = "gemini-1.5-flash"
_DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class GeminiError(RuntimeError):
    pass


@dataclass(frozen=True)
class GeminiSettings:
    api_key: str
    model: str = _DEFAULT_MODEL
    base_url: str = _DEFAULT_BASE_URL
    timeout_seconds: float = 12.0

    @property
    def configured(self) -> bool:
        key = self.api_key.strip()
        return bool(key) and key not in _PLACEHOLDER_KEYS

    @classmethod
    def from_env(cls) -> "GeminiSettings":
        return cls(
            api_key=(os.getenv("GEMINI_API_KEY") or "").strip(),
            model=(os.getenv("GEMINI_MODEL") or _DEFAULT_MODEL).strip(),
            base_url=(os.getenv("GEMINI_API_BASE_URL") or _DEFAULT_BASE_URL).rstrip("/"),
            timeout_seconds=float(os.getenv("MEDIKIT_AI_TIMEOUT_SECONDS", "12")),
        )


def _provider_error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        err = payload.get("error")
        if isinstance(err, dict):
            msg = err.get("message")
            if isinstance(msg, str) and msg.strip():
                return msg.strip()
    return f"Gemini API error ({response.status_code})"


def _coerce_candidate_text(response_json: dict[str, Any]) -> str:
    candidates = response_json.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return ""
    first = candidates[0] if isinstance(candidates[0], dict) else {}
    content = first.get("content")
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        return ""
    texts = [part.get("text") for part in parts if isinstance(part, dict) and isinstance(part.get("text"), str)]
    return "".join(text for text in texts if text).strip()


class GeminiClient:
    def __init__(self, settings: GeminiSettings, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.settings = settings
        self._transport = transport

    @property
    def endpoint(self) -> str:
        return f"{self.settings.base_url}/models/{self.settings.model}:generateContent"

    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        timeout = httpx.Timeout(self.settings.timeout_seconds, connect=min(8.0, self.settings.timeout_seconds))
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            return await client.post(
                self.endpoint,
                params={"key": self.settings.api_key},
                headers={"Content-Type": "application/json"},
                json=payload,
            )

    def generate(self, complaint: str, patient=None) -> str:
        """Single call bounded by ``timeout_seconds`` of wall-clock time.

        The whole exchange, body included, runs under ``asyncio.wait_for``
        so a server that trickles bytes cannot hold the caller past the
        bound. Any failure surfaces as ``GeminiError``. Must not be called
        from a running event loop.
        """
        if not self.settings.configured:
            raise GeminiError("Gemini endpoint not configured")

        payload = {
            "contents": [
                {
                    "role": "user",
                    "parts": [{"text": build_prompt(complaint, patient)}],
                }
            ],
            "generationConfig": {
                "temperature": 0.3,
                "maxOutputTokens": 512,
                "responseMimeType": "text/plain",
            },
        }
        try:
            response = asyncio.run(asyncio.wait_for(self._post(payload), self.settings.timeout_seconds))
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise GeminiError("Gemini request timed out") from exc
        except httpx.HTTPError as exc:
            raise GeminiError(f"Failed to reach Gemini: {exc}") from exc

        if response.status_code >= 400:
            raise GeminiError(_provider_error_message(response))
        try:
            completion = response.json()
        except ValueError as exc:
            raise GeminiError("Gemini returned invalid JSON") from exc
        text = _coerce_candidate_text(completion) if isinstance(completion, dict) else ""
        if not text:
            raise GeminiError("Gemini returned empty response")
        return text
