"""
Gemini-backed assistant for the AI channel.

Single-shot generateContent calls over aiohttp. No streaming and no
retries: a failed call yields an unsuccessful AssistantReply.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

import aiohttp

from src.settings import ServiceSettings

logger = logging.getLogger(__name__)

NOT_CONFIGURED_TEXT = "Assistant API not configured."
FAILURE_TEXT = "The assistant is unavailable right now. Please try again later."


@dataclass
class AssistantReply:
    """Result of one generation."""

    text: str
    success: bool
    duration_seconds: float = 0.0
    error: Optional[str] = None


class AssistantClient:
    """Thin client for the Gemini generateContent endpoint."""

    def __init__(self, session: aiohttp.ClientSession, services: ServiceSettings, api_key: str = ""):
        self.session = session
        self.services = services
        self.api_key = api_key

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    @property
    def endpoint(self) -> str:
        return f"{self.services.assistant_base_url}/models/{self.services.assistant_model}:generateContent"

    @staticmethod
    def _extract_text(payload: Dict[str, Any]) -> Optional[str]:
        """Pull the first candidate's text out of a response body."""
        candidates = payload.get("candidates") or []
        if not candidates:
            return None
        content = candidates[0].get("content") or {}
        if isinstance(content, str):
            return content
        parts = content.get("parts") or []
        texts = [part.get("text", "") for part in parts if isinstance(part, dict)]
        joined = "".join(texts).strip()
        return joined or None

    async def generate(self, prompt: str) -> AssistantReply:
        """Ask the model for a completion of prompt."""
        if not self.configured:
            return AssistantReply(text=NOT_CONFIGURED_TEXT, success=False, error="missing api key")

        started_at = datetime.now()
        body = {"contents": [{"parts": [{"text": prompt}]}]}

        try:
            async with self.session.post(
                self.endpoint, params={"key": self.api_key}, json=body
            ) as response:
                payload = await response.json()
                if not isinstance(payload, dict):
                    raise ValueError("response body is not an object")
                if response.status >= 400:
                    message = (payload.get("error") or {}).get("message", f"HTTP {response.status}")
                    raise ValueError(message)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning(f"Gemini API error: {e}")
            return AssistantReply(
                text=FAILURE_TEXT,
                success=False,
                duration_seconds=(datetime.now() - started_at).total_seconds(),
                error=str(e),
            )

        duration = (datetime.now() - started_at).total_seconds()
        text = self._extract_text(payload)
        if text is None:
            logger.warning(f"Gemini returned no candidates: {str(payload)[:200]}")
            return AssistantReply(text=FAILURE_TEXT, success=False, duration_seconds=duration,
                                  error="empty response")

        logger.info(f"Gemini reply in {duration:.1f}s ({len(text)} chars)")
        return AssistantReply(text=text, success=True, duration_seconds=duration)
