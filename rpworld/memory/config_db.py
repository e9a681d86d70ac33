"""
世界配置仓库（单例）

保存时按字段合并，未指定的字段保持原值
"""
from typing import Any, Dict, Union
from sqlalchemy.orm import Session

from rpworld.db.crud import world_config_crud
from rpworld.memory.repository import StoreContext, coerce_model
from rpworld.memory.schemas import WorldConfigData
from rpworld.world.status import OperationStatus


class ConfigRepository:
    """世界配置仓库"""

    def __init__(self, context: StoreContext, status: OperationStatus):
        self.context = context
        self.status = status
        self._config = WorldConfigData()

    def get(self) -> WorldConfigData:
        return self._config.model_copy()

    def clear(self) -> None:
        self._config = WorldConfigData()

    async def load(self) -> WorldConfigData:
        """从存储加载配置，缺失的字段使用默认值"""
        async with self.status.track("load_config"):
            store = self.context.current_store()
            loaded = await store.run(
                lambda session: WorldConfigData.from_record(world_config_crud.get(session))
            )
            if self.context.is_current(store):
                self._config = loaded
            return self.get()

    async def save(self, values: Union[WorldConfigData, Dict[str, Any]]) -> WorldConfigData:
        """
        合并保存配置

        Args:
            values: 部分或完整的配置，只有显式给出的字段会被更新

        Returns:
            合并后的配置
        """
        async with self.status.track("save_config"):
            updates = coerce_model(WorldConfigData, values, "config").model_dump(exclude_unset=True)
            store = self.context.current_store()

            def work(session: Session) -> WorldConfigData:
                return WorldConfigData.from_record(world_config_crud.merge(session, updates))

            merged = await store.run(work)
            if self.context.is_current(store):
                self._config = merged
            return merged.model_copy()
