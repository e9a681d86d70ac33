"""
CRUD 操作基类和管理器

提供通用的 CRUD（增删改查）操作接口
"""
from typing import TypeVar, Generic, Type, List, Optional, Dict, Any, Tuple
from sqlalchemy import select, func, delete
from sqlalchemy.orm import Session

from rpworld.db.base import Base

# 泛型类型变量，用于表示任意模型类
ModelType = TypeVar("ModelType", bound=Base)


class CRUDBase(Generic[ModelType]):
    """
    CRUD 操作基类

    提供通用的增删改查方法，可被任何模型复用
    """

    def __init__(self, model: Type[ModelType]):
        """
        初始化 CRUD 管理器

        Args:
            model: SQLAlchemy 模型类
        """
        self.model = model

    @property
    def primary_key(self) -> str:
        return self.model.__mapper__.primary_key[0].name

    def create(self, session: Session, **kwargs) -> ModelType:
        """
        创建新记录

        Args:
            session: 数据库会话
            **kwargs: 模型字段值

        Returns:
            创建的模型实例
        """
        obj = self.model(**kwargs)
        session.add(obj)
        session.flush()  # 立即获取自增 ID
        return obj

    def get_by_id(self, session: Session, obj_id: Any) -> Optional[ModelType]:
        """
        根据 ID 查询记录

        Returns:
            模型实例，如果不存在则返回 None
        """
        if obj_id is None:
            return None
        return session.get(self.model, obj_id)

    def get_all(
        self, session: Session, skip: int = 0, limit: Optional[int] = None
    ) -> List[ModelType]:
        """
        按主键顺序查询所有记录（支持分页）

        Args:
            session: 数据库会话
            skip: 跳过的记录数（偏移量）
            limit: 返回的最大记录数，None 表示不限制

        Returns:
            模型实例列表
        """
        stmt = select(self.model).order_by(getattr(self.model, self.primary_key)).offset(skip)
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(session.scalars(stmt).all())

    def count(self, session: Session) -> int:
        """统计记录总数"""
        stmt = select(func.count()).select_from(self.model)
        return session.scalar(stmt) or 0

    def update(self, session: Session, obj_id: Any, **kwargs) -> Optional[ModelType]:
        """
        更新记录

        Returns:
            更新后的模型实例，如果不存在则返回 None
        """
        obj = self.get_by_id(session, obj_id)
        if obj is None:
            return None

        for key, value in kwargs.items():
            if hasattr(obj, key):
                setattr(obj, key, value)

        session.flush()
        return obj

    def upsert(self, session: Session, obj_id: Any, **kwargs) -> ModelType:
        """
        存在则覆盖，否则新建（ID 由数据库分配）

        Args:
            session: 数据库会话
            obj_id: 记录 ID，为空或不存在时新建
            **kwargs: 模型字段值

        Returns:
            保存后的模型实例
        """
        obj = self.update(session, obj_id, **kwargs)
        if obj is None:
            obj = self.create(session, **kwargs)
        return obj

    def delete(self, session: Session, obj_id: Any) -> bool:
        """
        删除记录

        Returns:
            删除成功返回 True，记录不存在返回 False
        """
        obj = self.get_by_id(session, obj_id)
        if obj is None:
            return False

        session.delete(obj)
        session.flush()
        return True

    def delete_all(self, session: Session) -> int:
        """清空整张表，返回删除的行数"""
        result = session.execute(delete(self.model))
        session.flush()
        return result.rowcount or 0


# ===== 特定模型的 CRUD 管理器 =====

from rpworld.db.character import Character
from rpworld.db.group import Group
from rpworld.db.worldbook import WorldbookEntry
from rpworld.db.chat_message import ChatMessage
from rpworld.db.world_config import WorldConfig, CONFIG_ROW_ID
from rpworld.db.vector_record import VectorRecord


class CharacterCRUD(CRUDBase[Character]):
    """Character 模型的 CRUD 管理器"""

    def get_player(self, session: Session) -> Optional[Character]:
        """查询主角"""
        stmt = select(Character).where(Character.is_player == True).order_by(Character.id)
        return session.scalars(stmt).first()

    def clear_player_flag(self, session: Session, except_id: int) -> List[int]:
        """将除 except_id 外所有角色的主角标记清除，返回被修改的角色 ID"""
        stmt = select(Character).where(Character.is_player == True, Character.id != except_id)
        changed = []
        for char in session.scalars(stmt).all():
            char.is_player = False
            changed.append(char.id)
        session.flush()
        return changed

    def existing_ids(self, session: Session, ids: List[int]) -> set[int]:
        """返回 ids 中实际存在的角色 ID"""
        if not ids:
            return set()
        stmt = select(Character.id).where(Character.id.in_(ids))
        return set(session.scalars(stmt).all())


class GroupCRUD(CRUDBase[Group]):
    """Group 模型的 CRUD 管理器"""

    def get_containing(self, session: Session, character_id: int) -> List[Group]:
        """查询包含指定角色的群组（JSON 列无法直接索引，在内存中过滤）"""
        return [g for g in self.get_all(session) if character_id in (g.character_ids or [])]

    def remove_member(
        self, session: Session, character_id: int, delete_empty: bool = False
    ) -> Tuple[List[Group], List[int]]:
        """
        从所有群组中移除角色

        Args:
            session: 数据库会话
            character_id: 角色 ID
            delete_empty: 为 True 时删除成员为空的群组

        Returns:
            (被更新的群组列表, 被删除的群组 ID 列表)
        """
        updated: List[Group] = []
        removed: List[int] = []
        for group in self.get_containing(session, character_id):
            remaining = [cid for cid in group.character_ids if cid != character_id]
            if not remaining and delete_empty:
                removed.append(group.id)
                session.delete(group)
                continue
            # JSON 列需要整体赋值才能被检测到变更
            group.character_ids = remaining
            updated.append(group)
        session.flush()
        return updated, removed


class WorldbookCRUD(CRUDBase[WorldbookEntry]):
    """WorldbookEntry 模型的 CRUD 管理器（关键词匹配只在缓存上进行）"""


class ChatMessageCRUD(CRUDBase[ChatMessage]):
    """ChatMessage 模型的 CRUD 管理器"""

    def get_by_session(self, session: Session, session_id: str) -> List[ChatMessage]:
        """按时间顺序查询会话的所有消息"""
        stmt = (
            select(ChatMessage)
            .where(ChatMessage.session_id == session_id)
            .order_by(ChatMessage.timestamp, ChatMessage.id)
        )
        return list(session.scalars(stmt).all())

    def delete_by_session(self, session: Session, session_id: str) -> int:
        """删除会话的所有消息，返回删除数量"""
        result = session.execute(delete(ChatMessage).where(ChatMessage.session_id == session_id))
        session.flush()
        return result.rowcount or 0

    def list_sessions(self, session: Session) -> List[str]:
        """列出所有会话 ID"""
        stmt = select(ChatMessage.session_id).distinct().order_by(ChatMessage.session_id)
        return list(session.scalars(stmt).all())


class WorldConfigCRUD(CRUDBase[WorldConfig]):
    """WorldConfig 单例记录的 CRUD 管理器"""

    def get(self, session: Session) -> Optional[WorldConfig]:
        return self.get_by_id(session, CONFIG_ROW_ID)

    def merge(self, session: Session, values: Dict[str, Any]) -> WorldConfig:
        """按字段合并保存，未指定的字段保持原值"""
        config = self.get(session)
        if config is None:
            config = self.create(session, id=CONFIG_ROW_ID)
        for key, value in values.items():
            if hasattr(config, key) and key != "id":
                setattr(config, key, value)
        session.flush()
        return config


class VectorRecordCRUD(CRUDBase[VectorRecord]):
    """VectorRecord 模型的 CRUD 管理器"""

    def upsert_record(self, session: Session, message_id: int, **kwargs) -> VectorRecord:
        """以 message_id 为键写入向量记录"""
        obj = self.update(session, message_id, **kwargs)
        if obj is None:
            obj = self.create(session, message_id=message_id, **kwargs)
        return obj

    def get_by_session(self, session: Session, session_id: str) -> List[VectorRecord]:
        stmt = select(VectorRecord).where(VectorRecord.session_id == session_id)
        return list(session.scalars(stmt).all())

    def delete_by_session(self, session: Session, session_id: str) -> int:
        result = session.execute(delete(VectorRecord).where(VectorRecord.session_id == session_id))
        session.flush()
        return result.rowcount or 0


# ===== 全局 CRUD 实例 =====

character_crud = CharacterCRUD(Character)
group_crud = GroupCRUD(Group)
worldbook_crud = WorldbookCRUD(WorldbookEntry)
chat_message_crud = ChatMessageCRUD(ChatMessage)
world_config_crud = WorldConfigCRUD(WorldConfig)
vector_record_crud = VectorRecordCRUD(VectorRecord)
