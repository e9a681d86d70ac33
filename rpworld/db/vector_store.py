"""
向量集合

在世界数据库中以 JSON 列保存 embedding，相似度计算使用纯 Python 余弦相似度，
无需外部向量数据库。集合句柄绑定到具体的存储句柄和 schema 版本。
"""
import math
from datetime import datetime
from typing import List, Optional, Tuple
from sqlalchemy import inspect
from sqlalchemy.orm import Session
from loguru import logger

from rpworld.db.crud import vector_record_crud
from rpworld.db.store import WorldStore
from rpworld.db.vector_record import VectorRecord
from rpworld.exceptions import VectorIndexError


def cosine_similarity(a: List[float], b: List[float]) -> float:
    """计算两个向量的余弦相似度，纯 Python 实现，无需 numpy"""
    if len(a) != len(b) or not a:
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(x * x for x in b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return dot / (norm_a * norm_b)


class VectorCollection:
    """
    向量集合句柄

    构建时校验：
    - 集合名称与 VectorRecord 表一致且已存在
    - 向量字段是表中的列
    - 请求的版本与存储的 schema 版本一致
    """

    def __init__(
        self,
        store: WorldStore,
        collection: str = "vectors",
        vector_field: str = "vector",
        version: Optional[int] = None,
    ):
        """
        Raises:
            VectorIndexError: 任一校验失败
        """
        store.ensure_open()
        if collection != VectorRecord.__tablename__:
            raise VectorIndexError(
                "未知的向量集合", details={"collection": collection}
            )
        try:
            tables = store.table_names()
            columns = (
                {col["name"] for col in inspect(store.engine).get_columns(collection)}
                if collection in tables
                else set()
            )
            schema_version = store.schema_version
        except Exception as e:
            raise VectorIndexError(f"读取向量集合结构失败: {e}", details={"collection": collection}) from e

        if collection not in tables:
            raise VectorIndexError("向量集合不存在", details={"collection": collection})
        if vector_field not in columns:
            raise VectorIndexError(
                "向量字段不存在", details={"collection": collection, "field": vector_field}
            )
        if version is not None and version != schema_version:
            raise VectorIndexError(
                "向量集合版本与存储不一致",
                details={"expected": schema_version, "requested": version},
            )

        self.store = store
        self.collection = collection
        self.vector_field = vector_field
        self.version = schema_version

    async def upsert(
        self,
        message_id: int,
        vector: List[float],
        content: str,
        session_id: str,
        role: str = "",
        character_name: str = "",
        timestamp: Optional[datetime] = None,
    ) -> None:
        """以 message_id 为键写入（覆盖）一条向量记录"""
        if not vector:
            raise VectorIndexError("向量为空", details={"message_id": message_id})

        values = {
            "content": content,
            "session_id": session_id,
            "role": role,
            "character_name": character_name,
            "timestamp": timestamp or datetime.utcnow(),
            self.vector_field: [float(x) for x in vector],
        }

        def work(session: Session) -> None:
            vector_record_crud.upsert_record(session, message_id, **values)

        await self.store.run(work)
        logger.debug(f"向量记录已写入: message_id={message_id}, dim={len(vector)}")

    async def get(self, message_id: int) -> Optional[VectorRecord]:
        return await self.store.run(lambda s: vector_record_crud.get_by_id(s, message_id))

    async def count(self) -> int:
        return await self.store.run(vector_record_crud.count)

    async def query(
        self,
        vector: List[float],
        top_k: int = 5,
        session_id: Optional[str] = None,
        min_similarity: float = 0.0,
    ) -> List[Tuple[float, VectorRecord]]:
        """
        最近邻检索

        Args:
            vector: 查询向量
            top_k: 返回最多 top_k 条
            session_id: 只在指定会话中检索（可选）
            min_similarity: 最低相似度阈值

        Returns:
            [(相似度, 向量记录)]，按相似度降序
        """

        def work(session: Session) -> List[VectorRecord]:
            if session_id is not None:
                return vector_record_crud.get_by_session(session, session_id)
            return vector_record_crud.get_all(session)

        records = await self.store.run(work)
        scored: List[Tuple[float, VectorRecord]] = []
        for record in records:
            sim = cosine_similarity(vector, getattr(record, self.vector_field) or [])
            if sim >= min_similarity:
                scored.append((sim, record))

        scored.sort(key=lambda x: x[0], reverse=True)
        return scored[:top_k]

    async def delete_session(self, session_id: str) -> int:
        return await self.store.run(lambda s: vector_record_crud.delete_by_session(s, session_id))
