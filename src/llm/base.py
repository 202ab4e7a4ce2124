import asyncio
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, TypeVar

from errors import LLMError
from logger import logger

__all__ = ["LLMClient"]

T = TypeVar("T")


class LLMClient(ABC):
    """语言理解服务: 输入一段 prompt, 返回模型的原始文本输出"""

    API_RETRY_DELAYS_SECONDS = [5.0, 15.0]

    @abstractmethod
    async def complete(self, prompt: str) -> str:
        pass

    @staticmethod
    def _is_retryable_error(error: Exception) -> bool:
        msg = str(error).lower()
        signals = [
            "429",
            "rate limit",
            "resource_exhausted",
            "temporarily unavailable",
            "timeout",
            "timed out",
            "503",
            "502",
            "504",
            "connection reset",
            "connection aborted",
        ]
        return any(s in msg for s in signals)

    async def _call_with_retry(self, call: Callable[[], Awaitable[T]]) -> T:
        delays = [0.0, *self.API_RETRY_DELAYS_SECONDS]
        for idx, delay in enumerate(delays):
            try:
                if delay > 0:
                    await asyncio.sleep(delay)
                return await call()
            except Exception as e:
                is_last = idx == len(delays) - 1
                if is_last or not self._is_retryable_error(e):
                    raise LLMError(f"{self.__class__.__name__} 请求失败: {e}") from e
                logger.warning(
                    f"{self.__class__.__name__} 请求暂时失败，准备重试: "
                    f"attempt={idx + 1}/{len(delays)}, delay={delays[idx + 1]}s, error={e}"
                )

        raise LLMError("LLM 请求重试异常退出")
