from logger import logger
from config.settings import (
    OPENAI_PRIMARY_API_KEY,
    OPENAI_PRIMARY_BASE_URL,
    LLM_MAX_OUTPUT_TOKENS,
    LLM_MODEL,
    LLM_TEMPERATURE,
    LLM_TOP_P,
)
from llm.base import LLMClient
from openai import AsyncOpenAI


class OpenAIClient(LLMClient):
    def __init__(
        self,
        api_key: str | None = OPENAI_PRIMARY_API_KEY,
        base_url: str = OPENAI_PRIMARY_BASE_URL,
        model: str = LLM_MODEL,
        max_output_tokens: int = LLM_MAX_OUTPUT_TOKENS,
    ) -> None:
        self.base_url = base_url
        self.model = model
        self.max_output_tokens = max_output_tokens
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=self.base_url
        )

    async def complete(self, prompt: str) -> str:
        logger.trace(f"LLM请求发起 BaseUrl:{self.base_url}; Model:{self.model}; Prompt:{prompt}")
        response = await self._call_with_retry(
            lambda: self.client.responses.create(
                model=self.model,
                input=[{"role": "user", "content": prompt}],
                temperature=LLM_TEMPERATURE,
                top_p=LLM_TOP_P,
                max_output_tokens=self.max_output_tokens,
            )
        )
        logger.trace(f"LLM请求收到响应: {response}")
        return (response.output_text or "").strip()
