"""
向量记忆管道

职责：
- 为当前世界构建向量集合句柄（单飞初始化：同一时刻最多一个初始化在执行，
  并发调用方共享同一个结果）
- 消息保存后异步生成 embedding 并写入向量集合
- 语义检索历史消息

管道失败不影响主流程：embedding 或写入异常只记录日志，不向 save 调用方传播。
"""
import asyncio
from enum import Enum
from typing import List, Optional, Set
from loguru import logger

from rpworld.db.store import SCHEMA_VERSION, WorldStore
from rpworld.db.vector_store import VectorCollection
from rpworld.memory.embedding import BaseEmbeddingBackend
from rpworld.memory.schemas import ChatMessageData, VectorHit


class VectorState(str, Enum):
    """管道状态"""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    UNAVAILABLE = "unavailable"


class VectorMemoryPipeline:
    """
    向量记忆管道

    使用方式：
        pipeline = VectorMemoryPipeline(backend)
        pipeline.attach(store)
        await pipeline.initialize()
        pipeline.schedule(message)   # 保存消息后调用，立即返回
        hits = await pipeline.search("古堡里的钥匙", top_k=5)
    """

    def __init__(
        self,
        embedder: BaseEmbeddingBackend,
        collection: str = "vectors",
        vector_field: str = "vector",
        version: int = SCHEMA_VERSION,
    ):
        self.embedder = embedder
        self.collection_name = collection
        self.vector_field = vector_field
        # 集合句柄要求的 schema 版本，与存储不一致时不可用
        self.version = version

        self._store: Optional[WorldStore] = None
        self._collection: Optional[VectorCollection] = None
        self._state = VectorState.UNINITIALIZED
        self._generation = 0
        self._init_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self.init_attempts = 0

    @property
    def state(self) -> VectorState:
        return self._state

    @property
    def collection(self) -> Optional[VectorCollection]:
        return self._collection

    @property
    def is_ready(self) -> bool:
        return self._state == VectorState.READY and self._collection is not None

    def attach(self, store: WorldStore) -> None:
        """绑定到新连接的世界存储，之前的集合句柄作废"""
        self.detach()
        self._store = store
        self._generation += 1

    def detach(self) -> None:
        """解除绑定并取消未完成的向量化任务，幂等"""
        self._generation += 1
        self._store = None
        self._collection = None
        self._init_task = None
        self._state = VectorState.UNINITIALIZED
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    async def initialize(self) -> bool:
        """
        初始化向量集合句柄

        已就绪时直接返回；有初始化正在进行时等待它完成并共享结果。

        Returns:
            是否进入 READY 状态
        """
        if self.is_ready:
            return True

        if self._store is None or self._store.closed:
            self._state = VectorState.UNAVAILABLE
            self._collection = None
            return False

        if self._init_task is None:
            self._state = VectorState.INITIALIZING
            self._init_task = asyncio.create_task(
                self._initialize(self._store, self._generation)
            )
        task = self._init_task
        # shield：某个等待方被取消时不影响其他等待方
        return await asyncio.shield(task)

    async def _initialize(self, store: WorldStore, generation: int) -> bool:
        self.init_attempts += 1
        try:
            collection = await asyncio.to_thread(
                VectorCollection,
                store,
                self.collection_name,
                self.vector_field,
                self.version,
            )
        except Exception as e:
            collection = None
            logger.bind(world=store.world_name).error(f"VectorDB初始化失败: {e}")

        if generation != self._generation:
            # 初始化期间世界已切换，结果作废
            logger.debug(f"丢弃过期的向量集合初始化结果: {store.world_name}")
            return False

        self._init_task = None
        if collection is None:
            self._collection = None
            self._state = VectorState.UNAVAILABLE
            return False

        self._collection = collection
        self._state = VectorState.READY
        logger.info(f"VectorDB初始化成功: {store.world_name}")
        return True

    def schedule(self, message: ChatMessageData) -> Optional[asyncio.Task]:
        """
        为已保存的消息安排后台向量化任务，立即返回

        内容去除空白后为空的消息不会触发 embedding。

        Returns:
            创建的任务；未安排时返回 None
        """
        if message.id is None or not message.content or not message.content.strip():
            return None
        task = asyncio.create_task(self.index_message(message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def index_message(self, message: ChatMessageData) -> bool:
        """
        生成 embedding 并写入向量集合

        所有异常在此处捕获并记录，不向调用方抛出。

        Returns:
            是否写入成功
        """
        log = logger.bind(message_id=message.id, session_id=message.session_id)
        try:
            if not self.is_ready and not await self.initialize():
                log.info("VectorDB未初始化，跳过向量化保存")
                return False
            collection = self._collection
            generation = self._generation

            vector = await asyncio.to_thread(self.embedder.embed, message.content)

            if generation != self._generation or collection is not self._collection:
                log.info("世界已切换，放弃写入向量记录")
                return False

            await collection.upsert(
                message.id,
                vector,
                content=message.content,
                session_id=message.session_id,
                role=message.role,
                character_name=message.character_name,
                timestamp=message.timestamp,
            )
            log.debug(f"消息向量化保存成功: {message.id}")
            return True
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # EmbeddingError / VectorIndexError / StorageError 都在这里吸收
            log.bind(error_type=type(e).__name__).warning(f"向量化保存失败: {e}")
        return False

    async def search(
        self, text: str, top_k: int = 5, session_id: Optional[str] = None
    ) -> List[VectorHit]:
        """
        检索与 text 语义最相关的历史消息

        失败时返回空列表。
        """
        if not text or not text.strip():
            return []
        try:
            if not await self.initialize():
                return []
            collection = self._collection
            vector = await asyncio.to_thread(self.embedder.embed, text)
            scored = await collection.query(vector, top_k=top_k, session_id=session_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.bind(error_type=type(e).__name__).warning(f"向量检索失败: {e}")
            return []

        hits = []
        for sim, record in scored:
            hit = VectorHit.model_validate(record)
            hit.similarity = round(sim, 4)
            hits.append(hit)
        return hits

    async def drain(self) -> None:
        """等待所有已安排的向量化任务结束"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
