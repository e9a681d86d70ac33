"""
世界书仓库
"""
from typing import List

from rpworld.db.crud import worldbook_crud
from rpworld.memory import lorebook
from rpworld.memory.repository import EntityRepository, StoreContext
from rpworld.memory.schemas import WorldbookData
from rpworld.world.status import OperationStatus


class WorldbookRepository(EntityRepository[WorldbookData]):
    """世界书仓库"""

    schema = WorldbookData
    entity_name = "worldbook"

    def __init__(self, context: StoreContext, status: OperationStatus):
        super().__init__(worldbook_crud, context, status)

    def get_triggered_worldbooks(self, text: str) -> List[WorldbookData]:
        """返回被 text 触发的条目，只读取缓存"""
        return [entry.model_copy(deep=True) for entry in lorebook.match_triggered(self._cache.values(), text)]

    def scan(self, text: str) -> List[lorebook.LorebookHit]:
        """与 get_triggered_worldbooks 相同，但附带命中的关键词"""
        return lorebook.scan(self.all(), text)
