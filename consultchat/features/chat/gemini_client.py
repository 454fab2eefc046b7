"""Gemini generateContent client over httpx."""
import logging
from typing import Any, List, Optional

import httpx

from consultchat.features.chat.provider import (
    Candidate,
    Content,
    GenerationConfig,
    GenerationResult,
    LLMProviderError,
)

logger = logging.getLogger("consultchat")

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com"


def parse_generation(data: Any) -> GenerationResult:
    candidates = []
    for raw in (data or {}).get("candidates") or []:
        parts = ((raw or {}).get("content") or {}).get("parts") or []
        texts = [part["text"] for part in parts if isinstance(part, dict) and isinstance(part.get("text"), str)]
        candidates.append(Candidate(texts=texts))
    return GenerationResult(candidates=candidates)


class GeminiClient:
    """Implements LLMProvider against the Generative Language REST API."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.model = model
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def generate_content(
        self,
        system_instruction: str,
        contents: List[Content],
        config: GenerationConfig,
    ) -> GenerationResult:
        if not self.api_key:
            raise LLMProviderError("GEMINI_API_KEY is not configured")

        body = {
            "systemInstruction": {"parts": [{"text": system_instruction}]},
            "contents": [content.to_wire() for content in contents],
            "generationConfig": {
                "temperature": config.temperature,
                "maxOutputTokens": config.max_output_tokens,
            },
        }
        try:
            response = await self._client.post(
                f"/v1beta/models/{self.model}:generateContent",
                json=body,
                headers={"x-goog-api-key": self.api_key},
            )
        except httpx.TimeoutException as exc:
            raise LLMProviderError(f"Gemini request timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise LLMProviderError(f"Gemini transport error: {exc}") from exc

        if response.status_code >= 400:
            raise LLMProviderError(
                f"Gemini API error: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise LLMProviderError(
                "Gemini returned a non-JSON response",
                status_code=response.status_code,
                body=response.text,
            ) from exc
        return parse_generation(payload)
