"""
持久化存储模块

提供世界数据库句柄、模型定义、CRUD 操作和向量集合
"""
from rpworld.db.base import Base, TimestampMixin
from rpworld.db.character import Character
from rpworld.db.group import Group
from rpworld.db.worldbook import WorldbookEntry
from rpworld.db.chat_message import ChatMessage
from rpworld.db.world_config import WorldConfig
from rpworld.db.vector_record import VectorRecord
from rpworld.db.store import WorldStore, SCHEMA_VERSION
from rpworld.db.crud import (
    CRUDBase,
    CharacterCRUD,
    GroupCRUD,
    WorldbookCRUD,
    ChatMessageCRUD,
    WorldConfigCRUD,
    VectorRecordCRUD,
    character_crud,
    group_crud,
    worldbook_crud,
    chat_message_crud,
    world_config_crud,
    vector_record_crud,
)
from rpworld.db.vector_store import VectorCollection, cosine_similarity

__all__ = [
    # 存储句柄
    "WorldStore",
    "SCHEMA_VERSION",
    # 基础类
    "Base",
    "TimestampMixin",
    # 模型
    "Character",
    "Group",
    "WorldbookEntry",
    "ChatMessage",
    "WorldConfig",
    "VectorRecord",
    # CRUD
    "CRUDBase",
    "CharacterCRUD",
    "GroupCRUD",
    "WorldbookCRUD",
    "ChatMessageCRUD",
    "WorldConfigCRUD",
    "VectorRecordCRUD",
    "character_crud",
    "group_crud",
    "worldbook_crud",
    "chat_message_crud",
    "world_config_crud",
    "vector_record_crud",
    # 向量集合
    "VectorCollection",
    "cosine_similarity",
]
