"""
实体仓库基类

每个集合一个仓库，结构相同：内存缓存与存储同步（读穿透 / 写穿透）。

- 修改类操作先写存储，成功后再更新缓存，失败时缓存保持调用前的状态
- 写回缓存前确认存储句柄仍是当前世界的句柄，避免断开后旧操作污染新世界的缓存
- 缓存按插入顺序迭代，已存在的条目原位更新
"""
from typing import Any, Dict, Generic, List, Optional, Protocol, Type, TypeVar, Union
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session
from loguru import logger

from rpworld.db.crud import CRUDBase
from rpworld.db.store import WorldStore
from rpworld.exceptions import StaleHandleError, ValidationError
from rpworld.memory.schemas import EntityModel
from rpworld.world.status import OperationStatus

SchemaT = TypeVar("SchemaT", bound=EntityModel)


class StoreContext(Protocol):
    """提供当前世界存储句柄的上下文（由 WorldConnectionManager 实现）"""

    def current_store(self) -> WorldStore:
        ...

    def is_current(self, store: WorldStore) -> bool:
        ...


def coerce_model(schema: Type[Any], data: Any, field: str) -> Any:
    """将 dict 或模型实例校验为 schema，失败时抛出 ValidationError"""
    if isinstance(data, schema):
        return data
    try:
        return schema.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(field, str(e)) from e


class EntityRepository(Generic[SchemaT]):
    """
    实体仓库基类

    子类需设置 schema（Pydantic 模型）和 entity_name（用于日志与操作名）
    """

    schema: Type[SchemaT]
    entity_name: str = "entity"

    def __init__(self, crud: CRUDBase, context: StoreContext, status: OperationStatus):
        self.crud = crud
        self.context = context
        self.status = status
        self._cache: Dict[int, SchemaT] = {}

    # ------------------------------------------------------------------ #
    # 缓存视图
    # ------------------------------------------------------------------ #

    def all(self) -> List[SchemaT]:
        """缓存中的全部实体（副本），按插入顺序"""
        return [entity.model_copy(deep=True) for entity in self._cache.values()]

    def cached(self, obj_id: int) -> Optional[SchemaT]:
        """只查缓存，不访问存储"""
        entity = self._cache.get(obj_id)
        return entity.model_copy(deep=True) if entity is not None else None

    def clear(self) -> None:
        self._cache = {}

    def __len__(self) -> int:
        return len(self._cache)

    # ------------------------------------------------------------------ #
    # 仓库操作
    # ------------------------------------------------------------------ #

    async def load_all(self) -> List[SchemaT]:
        """从存储重新加载整个集合，替换缓存"""
        async with self.status.track(f"load_all_{self.entity_name}"):
            store = self.context.current_store()
            rows = await store.run(self._load_all_records)
            self._ensure_current(store)
            self._cache = {row.id: row for row in rows}
            logger.debug(f"{self.entity_name} 缓存已加载: {len(rows)} 条")
            return self.all()

    async def save(self, entity: Union[SchemaT, Dict[str, Any]]) -> int:
        """
        创建或覆盖实体

        id 为空或在存储中不存在时由存储分配新 ID，否则覆盖该 ID 的记录。

        Returns:
            实体 ID
        """
        async with self.status.track(f"save_{self.entity_name}"):
            data = coerce_model(self.schema, entity, self.entity_name)
            store = self.context.current_store()
            saved = await store.run(lambda session: self._save_record(session, data))
            self._ensure_current(store)
            self._apply_saved(saved)
            return saved.id

    async def get_by_id(self, obj_id: int) -> Optional[SchemaT]:
        """缓存优先；未命中时读取存储并写入缓存，不重新加载整个集合"""
        cached = self.cached(obj_id)
        if cached is not None:
            return cached

        async with self.status.track(f"get_{self.entity_name}", loading=False):
            store = self.context.current_store()
            found = await store.run(lambda session: self._get_record(session, obj_id))
            if found is None:
                return None
            self._ensure_current(store)
            self._cache.setdefault(found.id, found)
            return self.cached(found.id)

    async def delete(self, obj_id: int) -> bool:
        """
        从存储和缓存中删除

        Returns:
            存储中存在并被删除时返回 True
        """
        async with self.status.track(f"delete_{self.entity_name}"):
            store = self.context.current_store()
            result = await store.run(lambda session: self._delete_record(session, obj_id))
            self._ensure_current(store)
            return self._apply_deleted(obj_id, result)

    # ------------------------------------------------------------------ #
    # 子类扩展点（_xxx_record 在存储线程中执行，_apply_xxx 在事件循环中执行）
    # ------------------------------------------------------------------ #

    def _to_schema(self, record: Any) -> SchemaT:
        return self.schema.from_record(record)

    def _load_all_records(self, session: Session) -> List[SchemaT]:
        return [self._to_schema(record) for record in self.crud.get_all(session)]

    def _get_record(self, session: Session, obj_id: int) -> Optional[SchemaT]:
        record = self.crud.get_by_id(session, obj_id)
        return self._to_schema(record) if record is not None else None

    def _save_record(self, session: Session, data: SchemaT) -> SchemaT:
        record = self.crud.upsert(session, data.id, **data.to_columns())
        return self._to_schema(record)

    def _delete_record(self, session: Session, obj_id: int) -> Any:
        return self.crud.delete(session, obj_id)

    def _apply_saved(self, saved: SchemaT) -> None:
        self._cache[saved.id] = saved

    def _apply_deleted(self, obj_id: int, result: Any) -> bool:
        self._cache.pop(obj_id, None)
        return bool(result)

    def _put_cached(self, entities: List[SchemaT]) -> None:
        """原位替换缓存中已存在的实体"""
        for entity in entities:
            if entity.id in self._cache:
                self._cache[entity.id] = entity

    def _evict(self, ids: List[int]) -> None:
        for obj_id in ids:
            self._cache.pop(obj_id, None)

    def _ensure_current(self, store: WorldStore) -> None:
        """
        Raises:
            StaleHandleError: 操作期间世界已断开或切换
        """
        if not self.context.is_current(store):
            raise StaleHandleError(store.world_name, store.generation)
