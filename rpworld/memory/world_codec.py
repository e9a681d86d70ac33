"""
世界导入导出

导出文档格式：
    {
        "meta": {"world": ..., "schemaVersion": ..., "exportedAt": ...},
        "characters": [...],
        "groups": [...],
        "worldbooks": [...],
        "chatMessages": [...],
        "config": {...}
    }

向量记录可由聊天记录重新生成，不参与导出。
导入前先完整校验文档，校验失败时不写入任何数据。
"""
from collections import Counter
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Mapping, Sequence
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session
from loguru import logger

from rpworld.db.base import utc_now
from rpworld.db.crud import (
    CRUDBase,
    character_crud,
    group_crud,
    worldbook_crud,
    chat_message_crud,
    world_config_crud,
    vector_record_crud,
)
from rpworld.db.store import SCHEMA_VERSION
from rpworld.exceptions import ValidationError
from rpworld.memory.schemas import (
    CharacterData,
    ChatMessageData,
    EntityModel,
    GroupData,
    WorldbookData,
    WorldConfigData,
)


class WorldDocument(BaseModel):
    """导出文档的结构"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    characters: List[CharacterData]
    groups: List[GroupData]
    worldbooks: List[WorldbookData]
    chat_messages: List[ChatMessageData]
    config: WorldConfigData
    meta: Dict[str, Any] = Field(default_factory=dict)


@dataclass
class ImportSummary:
    """导入结果统计"""
    characters: int = 0
    groups: int = 0
    worldbooks: int = 0
    chat_messages: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


def export_document(session: Session, world_name: str) -> Dict[str, Any]:
    """读取整个世界并生成导出文档"""
    return {
        "meta": {
            "world": world_name,
            "schemaVersion": SCHEMA_VERSION,
            "exportedAt": utc_now().isoformat(),
        },
        "characters": [
            CharacterData.from_record(r).to_document() for r in character_crud.get_all(session)
        ],
        "groups": [GroupData.from_record(r).to_document() for r in group_crud.get_all(session)],
        "worldbooks": [
            WorldbookData.from_record(r).to_document() for r in worldbook_crud.get_all(session)
        ],
        "chatMessages": [
            ChatMessageData.from_record(r).to_document() for r in chat_message_crud.get_all(session)
        ],
        "config": WorldConfigData.from_record(world_config_crud.get(session)).to_document(),
    }


def _check_unique_ids(field: str, entities: Sequence[EntityModel]) -> None:
    counts = Counter(e.id for e in entities if e.id is not None)
    duplicated = sorted(obj_id for obj_id, n in counts.items() if n > 1)
    if duplicated:
        raise ValidationError(field, f"ID 重复: {duplicated}")


def validate_document(document: Any) -> WorldDocument:
    """
    校验导入文档

    Raises:
        ValidationError: 顶层结构不符（集合必须是列表，config 必须是映射），
            或实体字段无效、ID 重复、群组引用了文档中不存在的角色、存在多个主角
    """
    if not isinstance(document, Mapping):
        raise ValidationError("document", "导入文档必须是 JSON 对象")
    config = document.get("config")
    if config is not None and not isinstance(config, Mapping):
        raise ValidationError("config", "config 必须是对象")

    try:
        doc = WorldDocument.model_validate(document)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or "document"
        raise ValidationError(field, first["msg"]) from e

    _check_unique_ids("characters", doc.characters)
    _check_unique_ids("groups", doc.groups)
    _check_unique_ids("worldbooks", doc.worldbooks)
    _check_unique_ids("chatMessages", doc.chat_messages)

    character_ids = {c.id for c in doc.characters if c.id is not None}
    for group in doc.groups:
        missing = [cid for cid in group.character_ids if cid not in character_ids]
        if missing:
            raise ValidationError("groups", f"群组 {group.name!r} 引用了不存在的角色: {missing}")

    players = [c.name for c in doc.characters if c.is_player]
    if len(players) > 1:
        raise ValidationError("characters", f"存在多个主角: {players}")

    return doc


def _insert_all(session: Session, crud: CRUDBase, entities: Sequence[EntityModel]) -> int:
    # 先写入带 ID 的实体，避免自增 ID 与文档中的 ID 冲突
    ordered = sorted(entities, key=lambda e: e.id is None)
    for entity in ordered:
        columns = entity.to_columns()
        if entity.id is not None:
            columns["id"] = entity.id
        crud.create(session, **columns)
    return len(ordered)


def import_document(session: Session, doc: WorldDocument) -> ImportSummary:
    """
    用文档内容替换世界中的全部数据（包括清空向量记录）

    在调用方提供的同一个事务中执行。
    """
    for crud in (
        vector_record_crud,
        chat_message_crud,
        group_crud,
        worldbook_crud,
        character_crud,
        world_config_crud,
    ):
        crud.delete_all(session)

    summary = ImportSummary(
        characters=_insert_all(session, character_crud, doc.characters),
        groups=_insert_all(session, group_crud, doc.groups),
        worldbooks=_insert_all(session, worldbook_crud, doc.worldbooks),
        chat_messages=_insert_all(session, chat_message_crud, doc.chat_messages),
    )
    world_config_crud.merge(session, doc.config.model_dump())
    logger.info(f"世界数据已导入: {summary.to_dict()}")
    return summary
