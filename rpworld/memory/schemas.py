"""
实体数据模型（Pydantic）

缓存、仓库接口和导入导出文档都使用这些模型。字段以 snake_case 定义，
序列化时使用 camelCase 别名，与前端和导出文档格式保持一致。
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from rpworld.db.base import utc_now


class EntityModel(BaseModel):
    """实体模型基类"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    id: Optional[int] = Field(default=None, description="标识，为空时由存储分配")

    @classmethod
    def from_record(cls, record: Any):
        """由 ORM 记录构建"""
        return cls.model_validate(record.to_dict())

    def to_columns(self) -> Dict[str, Any]:
        """转换为 ORM 列值（不含 id）"""
        return self.model_dump(exclude={"id"})

    def to_document(self) -> Dict[str, Any]:
        """转换为导出文档格式"""
        return self.model_dump(mode="json", by_alias=True)


class CharacterData(EntityModel):
    """角色"""

    name: str = Field(..., min_length=1, max_length=100, description="角色名称")
    description: str = ""
    persona: str = ""
    greeting: str = ""
    personality: str = ""
    background: str = ""
    avatar_url: str = ""
    is_player: bool = False
    is_public: bool = False
    allow_edit: bool = True


class GroupData(EntityModel):
    """群组"""

    name: str = Field(..., min_length=1, max_length=100, description="群组名称")
    description: str = ""
    avatar_url: str = ""
    character_ids: List[int] = Field(default_factory=list, description="有序的成员角色ID")
    is_private: bool = False
    allow_invites: bool = True


class WorldbookData(EntityModel):
    """世界书条目，未声明的字段保存在 extra 中"""

    model_config = ConfigDict(extra="allow")

    title: str = ""
    keywords: str = Field(default="", description="逗号或中文逗号分隔的关键词")
    content: str = ""

    def to_columns(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "keywords": self.keywords,
            "content": self.content,
            "extra": dict(self.model_extra or {}),
        }

    @classmethod
    def from_record(cls, record: Any) -> "WorldbookData":
        data = dict(record.extra or {})
        data.update(id=record.id, title=record.title, keywords=record.keywords, content=record.content)
        return cls.model_validate(data)


class ChatMessageData(EntityModel):
    """聊天消息"""

    session_id: str = Field(..., min_length=1, max_length=100)
    role: str = Field(..., min_length=1, max_length=20)
    character_name: str = ""
    content: str = ""
    timestamp: datetime = Field(default_factory=utc_now)


class WorldConfigData(BaseModel):
    """世界配置（单例，没有 id）"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    api_key: str = ""
    api_url: str = ""
    model: str = ""

    @classmethod
    def from_record(cls, record: Any) -> "WorldConfigData":
        if record is None:
            return cls()
        return cls(api_key=record.api_key, api_url=record.api_url, model=record.model)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class VectorHit(BaseModel):
    """向量检索命中的消息"""

    model_config = ConfigDict(from_attributes=True)

    message_id: int
    content: str
    character_name: str = ""
    role: str = ""
    timestamp: datetime
    session_id: str
    similarity: float = 0.0
