"""
公共测试夹具
"""
import time

import pytest
from loguru import logger

from rpworld.config import Settings
from rpworld.exceptions import EmbeddingError
from rpworld.memory.embedding import BaseEmbeddingBackend, HashingEmbeddingBackend
from rpworld.world.manager import WorldConnectionManager


class FakeEmbedder(BaseEmbeddingBackend):
    """记录调用的 embedding 后端，可模拟失败和延迟"""

    def __init__(self, fail: bool = False, delay: float = 0.0):
        self.fail = fail
        self.delay = delay
        self.calls = []
        self._backend = HashingEmbeddingBackend()

    def embed(self, text):
        self.calls.append(text)
        if self.delay:
            time.sleep(self.delay)
        if self.fail:
            raise EmbeddingError("embedding 配额已用尽")
        return self._backend.embed(text)

    @property
    def dim(self):
        return self._backend.dim


@pytest.fixture
def settings(tmp_path):
    """每个测试使用独立的数据目录"""
    return Settings(DATA_DIR=str(tmp_path / "worlds"))


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def manager(settings, embedder):
    mgr = WorldConnectionManager(settings, embedder=embedder)
    yield mgr
    mgr.disconnect()


@pytest.fixture
def log_records():
    """收集 loguru 日志记录"""
    records = []
    handler_id = logger.add(lambda message: records.append(message.record), level="DEBUG")
    yield records
    logger.remove(handler_id)


@pytest.fixture
def make_manager():
    """按需创建管理器，测试结束时统一断开"""
    managers = []

    def factory(settings, **embedder_options):
        mgr = WorldConnectionManager(settings, embedder=FakeEmbedder(**embedder_options))
        managers.append(mgr)
        return mgr

    yield factory
    for mgr in managers:
        mgr.disconnect()
