import asyncio
from typing import Any, List

from google import genai
from google.genai import types

from config.settings import (
    GEMINI_API_KEY,
    GEMINI_BASE_URL,
    LLM_MAX_OUTPUT_TOKENS,
    LLM_MODEL,
    LLM_TEMPERATURE,
    LLM_TOP_P,
)
from llm.base import LLMClient
from logger import logger


class GeminiClient(LLMClient):
    def __init__(
        self,
        base_url: str | None = GEMINI_BASE_URL,
        api_key: str | None = GEMINI_API_KEY,
        model: str = LLM_MODEL,
        max_output_tokens: int = LLM_MAX_OUTPUT_TOKENS,
    ) -> None:
        self.model = model
        self.client = genai.Client(api_key=api_key, http_options={"base_url": base_url} if base_url else None)
        self.config = types.GenerateContentConfig(
            temperature=LLM_TEMPERATURE,
            top_p=LLM_TOP_P,
            max_output_tokens=max_output_tokens,
        )

    @staticmethod
    def _extract_text(response: Any) -> str:
        text = getattr(response, "text", None)
        if isinstance(text, str) and text.strip():
            return text.strip()

        candidates = getattr(response, "candidates", None) or []
        if not candidates:
            return ""
        content = getattr(candidates[0], "content", None)
        parts: List[Any] = list(getattr(content, "parts", None) or [])
        texts = [p.text for p in parts if isinstance(getattr(p, "text", None), str)]
        return " ".join(texts).strip()

    async def _generate_once(self, prompt: str) -> Any:
        return await asyncio.to_thread(
            self.client.models.generate_content,
            model=self.model,
            contents=[{"role": "user", "parts": [{"text": prompt}]}],
            config=self.config,
        )

    async def complete(self, prompt: str) -> str:
        logger.trace(f"Gemini请求发起 Model:{self.model}; Prompt:{prompt}")
        response = await self._call_with_retry(lambda: self._generate_once(prompt))
        logger.trace(f"Gemini请求收到响应: {response}")
        return self._extract_text(response)
