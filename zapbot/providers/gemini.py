"""AI content generation (Google Gemini)."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import defaultdict, deque

import httpx
from loguru import logger

from zapbot.errors import GenerationError

# Turns (user + model) remembered per sender
MAX_HISTORY_TURNS = 10

SYSTEM_INSTRUCTION = (
    "You are a helpful assistant chatting over WhatsApp. "
    "Answer concisely and use WhatsApp formatting (*bold*, _italic_) sparingly."
)


class ContentGenerator(ABC):
    """Abstract base for AI content providers."""

    @abstractmethod
    async def generate(self, sender: str, prompt: str) -> str:
        """Generate a reply for ``prompt``. Raises GenerationError on failure."""


class GeminiProvider(ContentGenerator):
    """Gemini ``generateContent`` REST API with a short per-sender history."""

    def __init__(self, api_key: str, model: str = "gemini-2.0-flash", timeout: float = 60.0):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.api_url = f"https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
        self._history: dict[str, deque] = defaultdict(lambda: deque(maxlen=MAX_HISTORY_TURNS * 2))

    def _build_payload(self, sender: str, prompt: str) -> dict:
        contents = list(self._history[sender])
        contents.append({"role": "user", "parts": [{"text": prompt}]})
        return {
            "systemInstruction": {"parts": [{"text": SYSTEM_INSTRUCTION}]},
            "contents": contents,
        }

    @staticmethod
    def _extract_text(data: dict) -> str:
        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(p.get("text", "") for p in parts).strip()

    async def generate(self, sender: str, prompt: str) -> str:
        if not prompt.strip():
            raise GenerationError("empty prompt", "Prompt is empty")

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self.api_url,
                    params={"key": self.api_key},
                    json=self._build_payload(sender, prompt),
                    timeout=self.timeout,
                )
            response.raise_for_status()
            text = self._extract_text(response.json())
            if not text:
                raise GenerationError("empty response", "Gemini returned no text")
        except GenerationError:
            raise
        except httpx.HTTPStatusError as e:
            detail = f"Gemini API {e.response.status_code}: {e.response.text[:200]}"
            logger.error(detail)
            raise GenerationError("API error", detail) from e
        except Exception as e:
            logger.error(f"Gemini generation error: {e}")
            raise GenerationError("generation failed", str(e)) from e

        history = self._history[sender]
        history.append({"role": "user", "parts": [{"text": prompt}]})
        history.append({"role": "model", "parts": [{"text": text}]})
        return text


def create_content_generator(api_key: str, model: str, timeout: float = 60.0) -> ContentGenerator | None:
    """Factory: create the AI provider, or None if no key is configured."""
    if not api_key:
        logger.warning("Gemini API key not configured; AI commands disabled")
        return None
    return GeminiProvider(api_key=api_key, model=model, timeout=timeout)
