"""
角色仓库

在通用仓库之上维护两条规则：
- 主角唯一：保存 is_player=True 的角色时，清除其他角色的主角标记
- 删除角色时同步修正群组成员列表（同一事务）
"""
from typing import Any, List, Optional, Tuple
from sqlalchemy.orm import Session
from loguru import logger

from rpworld.config import EmptyGroupPolicy
from rpworld.db.crud import character_crud, group_crud
from rpworld.memory.group_db import GroupRepository
from rpworld.memory.repository import EntityRepository, StoreContext
from rpworld.memory.schemas import CharacterData, GroupData
from rpworld.world.status import OperationStatus


class CharacterRepository(EntityRepository[CharacterData]):
    """角色仓库"""

    schema = CharacterData
    entity_name = "character"

    def __init__(
        self,
        context: StoreContext,
        status: OperationStatus,
        groups: GroupRepository,
        empty_group_policy: EmptyGroupPolicy = EmptyGroupPolicy.RETAIN,
    ):
        """
        Args:
            context: 当前世界存储上下文
            status: 共享的操作状态
            groups: 群组仓库，删除角色后同步其缓存
            empty_group_policy: 删除角色后成员为空的群组如何处理
        """
        super().__init__(character_crud, context, status)
        self.groups = groups
        self.empty_group_policy = EmptyGroupPolicy(empty_group_policy)

    def player_character(self) -> Optional[CharacterData]:
        """主角，没有时返回 None"""
        for char in self._cache.values():
            if char.is_player:
                return char.model_copy(deep=True)
        return None

    def available_characters(self) -> List[CharacterData]:
        """所有非主角角色"""
        return [char.model_copy(deep=True) for char in self._cache.values() if not char.is_player]

    def _save_record(self, session: Session, data: CharacterData) -> CharacterData:
        saved = super()._save_record(session, data)
        if saved.is_player:
            cleared = character_crud.clear_player_flag(session, except_id=saved.id)
            if cleared:
                logger.debug(f"已清除角色 {cleared} 的主角标记")
        return saved

    def _apply_saved(self, saved: CharacterData) -> None:
        super()._apply_saved(saved)
        if saved.is_player:
            for char_id, char in self._cache.items():
                if char_id != saved.id and char.is_player:
                    self._cache[char_id] = char.model_copy(update={"is_player": False})

    def _delete_record(
        self, session: Session, obj_id: int
    ) -> Tuple[bool, List[GroupData], List[int]]:
        deleted = character_crud.delete(session, obj_id)
        # 即使角色已不存在，也清理残留的群组引用
        updated, removed = group_crud.remove_member(
            session, obj_id, delete_empty=self.empty_group_policy == EmptyGroupPolicy.DELETE
        )
        return deleted, [GroupData.from_record(g) for g in updated], removed

    def _apply_deleted(self, obj_id: int, result: Any) -> bool:
        deleted, updated_groups, removed_groups = result
        self._cache.pop(obj_id, None)
        self.groups._put_cached(updated_groups)
        self.groups._evict(removed_groups)
        if updated_groups or removed_groups:
            logger.debug(
                f"删除角色 {obj_id} 后更新群组 {[g.id for g in updated_groups]}，"
                f"删除空群组 {removed_groups}"
            )
        return deleted
