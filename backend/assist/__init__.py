from .gemini import GeminiClient, GeminiError, GeminiSettings
from .local import TOPIC_TIPS, find_topic_tips, generate_local_response
from .responder import AiResponder
from .validation import needs_fallback, normalize_ai_text

__all__ = [
    "TOPIC_TIPS",
    "AiResponder",
    "GeminiClient",
    "GeminiError",
    "GeminiSettings",
    "find_topic_tips",
    "generate_local_response",
    "needs_fallback",
    "normalize_ai_text",
]
