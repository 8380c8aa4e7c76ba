from __future__ import annotations

import logging
from typing import Any

from .gemini import GeminiClient, GeminiError, GeminiSettings
from .local import generate_local_response
from .templates import PROMPT_TEMPLATE, SAFETY_RULES
from .validation import needs_fallback, normalize_ai_text

logger = logging.getLogger(__name__)


class AiResponder:
    """Educational reply generator: remote model first, local rules second.

    ``generate`` never raises for upstream problems and never returns an
    empty string.
    """

    provider = "gemini"

    def __init__(self, client: GeminiClient) -> None:
        self.client = client

    @classmethod
    def from_env(cls) -> "AiResponder":
        return cls(GeminiClient(GeminiSettings.from_env()))

    @property
    def configured(self) -> bool:
        return self.client.settings.configured

    def _remote_response(self, complaint: str, patient) -> str | None:
        if not self.configured:
            return None
        try:
            text = self.client.generate(complaint, patient)
        except GeminiError as exc:
            logger.warning("Gemini fallback to local response: %s", exc)
            return None
        normalized = normalize_ai_text(text)
        if needs_fallback(normalized):
            logger.warning("Gemini response incomplete, using local response.")
            return None
        return normalized

    def generate(self, complaint: str, patient=None) -> str:
        text = self._remote_response(complaint, patient)
        if text is None:
            text = generate_local_response(complaint, patient)
        if not text or not text.strip():
            text = generate_local_response(complaint, patient)
        return text

    def meta(self) -> dict[str, Any]:
        return {
            "template": PROMPT_TEMPLATE,
            "safetyRules": list(SAFETY_RULES),
            "provider": self.provider,
            "configured": self.configured,
            "model": self.client.settings.model,
        }
