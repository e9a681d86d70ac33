"""
实体缓存与记忆模块

提供各集合的缓存仓库、世界书匹配、向量记忆管道和世界导入导出
"""
from rpworld.memory.schemas import (
    EntityModel,
    CharacterData,
    GroupData,
    WorldbookData,
    ChatMessageData,
    WorldConfigData,
    VectorHit,
)
from rpworld.memory.repository import EntityRepository, StoreContext
from rpworld.memory.character_db import CharacterRepository
from rpworld.memory.group_db import GroupRepository
from rpworld.memory.worldbook_db import WorldbookRepository
from rpworld.memory.config_db import ConfigRepository
from rpworld.memory.chat_db import ChatRepository
from rpworld.memory.lorebook import LorebookHit, match_triggered, split_keywords
from rpworld.memory.embedding import (
    BaseEmbeddingBackend,
    OpenAIEmbeddingBackend,
    HashingEmbeddingBackend,
    build_embedding_backend,
)
from rpworld.memory.vector_memory import VectorMemoryPipeline, VectorState
from rpworld.memory.world_codec import WorldDocument, ImportSummary, validate_document

__all__ = [
    # 模型
    "EntityModel",
    "CharacterData",
    "GroupData",
    "WorldbookData",
    "ChatMessageData",
    "WorldConfigData",
    "VectorHit",
    # 仓库
    "EntityRepository",
    "StoreContext",
    "CharacterRepository",
    "GroupRepository",
    "WorldbookRepository",
    "ConfigRepository",
    "ChatRepository",
    # 世界书
    "LorebookHit",
    "match_triggered",
    "split_keywords",
    # 向量记忆
    "BaseEmbeddingBackend",
    "OpenAIEmbeddingBackend",
    "HashingEmbeddingBackend",
    "build_embedding_backend",
    "VectorMemoryPipeline",
    "VectorState",
    # 导入导出
    "WorldDocument",
    "ImportSummary",
    "validate_document",
]
