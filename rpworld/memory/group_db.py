"""
群组仓库
"""
from typing import Callable, List, Optional
from sqlalchemy.orm import Session

from rpworld.db.crud import group_crud, character_crud
from rpworld.exceptions import ValidationError
from rpworld.memory.repository import EntityRepository, StoreContext
from rpworld.memory.schemas import CharacterData, GroupData
from rpworld.world.status import OperationStatus


class GroupRepository(EntityRepository[GroupData]):
    """群组仓库，成员只能引用同一世界中存在的角色"""

    schema = GroupData
    entity_name = "group"

    def __init__(
        self,
        context: StoreContext,
        status: OperationStatus,
        character_lookup: Callable[[int], Optional[CharacterData]],
    ):
        super().__init__(group_crud, context, status)
        self._character_lookup = character_lookup

    def _save_record(self, session: Session, data: GroupData) -> GroupData:
        existing = character_crud.existing_ids(session, data.character_ids)
        missing = [cid for cid in data.character_ids if cid not in existing]
        if missing:
            raise ValidationError("character_ids", f"引用了不存在的角色: {missing}")
        return super()._save_record(session, data)

    async def get_group_characters(self, group_id: int) -> List[CharacterData]:
        """按成员顺序返回群组中的角色，忽略缓存中找不到的角色"""
        group = await self.get_by_id(group_id)
        if group is None:
            return []
        members = (self._character_lookup(cid) for cid in group.character_ids)
        return [char for char in members if char is not None]
