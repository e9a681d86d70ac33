"""
Embedding 后端

支持的后端（按优先级）：
  1. OpenAI 兼容接口（默认 SiliconFlow Qwen3-Embedding，需要 API key）
  2. 降级：字符级 bigram 哈希向量，完全离线运行
"""
import hashlib
import math
from abc import ABC, abstractmethod
from typing import List, Optional
import openai
from openai import OpenAI
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)
from loguru import logger

from rpworld.config import Settings
from rpworld.exceptions import EmbeddingError


class BaseEmbeddingBackend(ABC):
    """Embedding 后端抽象基类"""

    @abstractmethod
    def embed(self, text: str) -> List[float]:
        """
        将文本转换为 embedding 向量

        Raises:
            EmbeddingError: 网络、配额或响应格式错误
        """
        ...

    @property
    @abstractmethod
    def dim(self) -> Optional[int]:
        """向量维度，未知时为 None"""
        ...


class OpenAIEmbeddingBackend(BaseEmbeddingBackend):
    """OpenAI 兼容的 embeddings 接口"""

    def __init__(
        self,
        api_key: str,
        api_base: Optional[str] = None,
        model: str = "Qwen/Qwen3-Embedding-4B",
        timeout: float = 30.0,
    ):
        if not api_key:
            raise EmbeddingError("Embedding API密钥未配置")
        self.model = model
        self._client = OpenAI(
            api_key=api_key,
            base_url=api_base or "https://api.openai.com/v1",
            timeout=timeout,
        )
        self._dim: Optional[int] = None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(
            (openai.RateLimitError, openai.APIConnectionError, openai.APITimeoutError)
        ),
        reraise=True,
    )
    def _create(self, text: str) -> List[float]:
        resp = self._client.embeddings.create(
            model=self.model,
            input=text,
            encoding_format="float",
        )
        if not resp.data:
            raise EmbeddingError("Embedding 响应为空", details={"model": self.model})
        return list(resp.data[0].embedding)

    def embed(self, text: str) -> List[float]:
        try:
            vector = self._create(text)
        except openai.OpenAIError as e:
            raise EmbeddingError(f"Embedding API调用失败: {e}", details={"model": self.model}) from e
        self._dim = len(vector)
        return vector

    @property
    def dim(self) -> Optional[int]:
        return self._dim


class HashingEmbeddingBackend(BaseEmbeddingBackend):
    """
    字符级 bigram 哈希降级后端

    不调用任何外部 API，向量维度固定，L2 归一化。
    使用 md5 做哈希映射，保证跨进程结果一致。
    """

    _DIM = 512

    def embed(self, text: str) -> List[float]:
        tokens = [text[i:i + 2] for i in range(len(text) - 1)] or list(text)

        vec = [0.0] * self._DIM
        for token in tokens:
            digest = hashlib.md5(token.encode("utf-8")).digest()
            idx = int.from_bytes(digest[:4], "little") % self._DIM
            vec[idx] += 1.0

        norm = math.sqrt(sum(x * x for x in vec))
        if norm > 0:
            vec = [x / norm for x in vec]
        return vec

    @property
    def dim(self) -> int:
        return self._DIM


def build_embedding_backend(settings: Settings) -> BaseEmbeddingBackend:
    """
    按优先级构建 embedding 后端：
    1. 有 EMBEDDING_API_KEY → OpenAI 兼容接口
    2. 无 API key → 哈希降级
    """
    if settings.EMBEDDING_API_KEY:
        try:
            backend = OpenAIEmbeddingBackend(
                settings.EMBEDDING_API_KEY,
                settings.EMBEDDING_API_BASE,
                settings.EMBEDDING_MODEL,
                settings.EMBEDDING_TIMEOUT,
            )
            logger.info(f"向量记忆使用 OpenAI 兼容 embedding 后端: {settings.EMBEDDING_MODEL}")
            return backend
        except EmbeddingError as e:
            logger.warning(f"Embedding 后端初始化失败，降级到哈希后端: {e}")
    logger.info("向量记忆使用哈希降级后端")
    return HashingEmbeddingBackend()
