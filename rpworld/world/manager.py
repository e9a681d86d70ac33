"""
世界连接管理器

显式的会话/上下文对象：持有当前世界的存储句柄、各集合的缓存仓库和向量记忆管道。
同一个管理器同一时刻只连接一个世界，切换世界需要先断开再连接。

用法:
    manager = WorldConnectionManager()
    await manager.connect("艾尔登")
    char_id = await manager.characters.save({"name": "艾琳", "isPlayer": True})
    await manager.chat.save_message({"sessionId": "s1", "role": "user", "content": "你好"})
    manager.disconnect()
"""
import asyncio
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple
from loguru import logger

from rpworld.config import Settings, get_settings
from rpworld.db.store import WorldStore
from rpworld.exceptions import (
    DataNotFoundError,
    NotConnectedError,
    StorageError,
    StorageUnavailableError,
    WorldConnectionError,
)
from rpworld.memory.character_db import CharacterRepository
from rpworld.memory.chat_db import ChatRepository
from rpworld.memory.config_db import ConfigRepository
from rpworld.memory.embedding import BaseEmbeddingBackend, build_embedding_backend
from rpworld.memory.group_db import GroupRepository
from rpworld.memory.schemas import WorldbookData
from rpworld.memory.vector_memory import VectorMemoryPipeline
from rpworld.memory.world_codec import ImportSummary, export_document, import_document, validate_document
from rpworld.memory.worldbook_db import WorldbookRepository
from rpworld.world.status import OperationStatus


class WorldConnectionManager:
    """世界连接管理器"""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        embedder: Optional[BaseEmbeddingBackend] = None,
    ):
        """
        Args:
            settings: 配置，默认使用全局配置
            embedder: embedding 后端，默认按配置构建
        """
        self.settings = settings or get_settings()
        self.status = OperationStatus()

        self._store: Optional[WorldStore] = None
        self._world_name = ""

        self.vector_memory = VectorMemoryPipeline(
            embedder or build_embedding_backend(self.settings),
            collection=self.settings.VECTOR_COLLECTION,
            vector_field=self.settings.VECTOR_FIELD,
        )
        self.groups = GroupRepository(self, self.status, character_lookup=self._lookup_character)
        self.characters = CharacterRepository(
            self, self.status, groups=self.groups, empty_group_policy=self.settings.EMPTY_GROUP_POLICY
        )
        self.worldbooks = WorldbookRepository(self, self.status)
        self.config = ConfigRepository(self, self.status)
        self.chat = ChatRepository(self, self.status, self.vector_memory)

    # ------------------------------------------------------------------ #
    # 连接状态
    # ------------------------------------------------------------------ #

    @property
    def loading(self) -> bool:
        return self.status.loading

    @property
    def error(self) -> Optional[str]:
        return self.status.error

    def clear_error(self) -> None:
        self.status.clear_error()

    def is_connected(self) -> bool:
        """存在打开的存储句柄且世界名称非空"""
        return self._store is not None and not self._store.closed and bool(self._world_name)

    def current_world(self) -> Optional[str]:
        return self._world_name if self.is_connected() else None

    def current_store(self) -> WorldStore:
        """
        Raises:
            NotConnectedError: 当前未连接世界
        """
        if not self.is_connected():
            raise NotConnectedError()
        return self._store

    def is_current(self, store: WorldStore) -> bool:
        return store is self._store and not store.closed

    def sync_connection_state(self) -> bool:
        """
        根据存储句柄和世界名称重新推导连接状态

        用于修复缓存的状态与实际句柄不一致的情况：
        - 句柄已被关闭但状态仍在：清理为断开
        - 句柄有效但名称丢失：从句柄恢复名称

        Returns:
            同步后的连接状态
        """
        store = self._store
        if store is not None and not store.closed and not self._world_name:
            logger.warning(f"同步连接状态: 从存储句柄恢复世界名称 {store.world_name}")
            self._world_name = store.world_name
        elif (store is None or store.closed) and (store is not None or self._world_name):
            logger.warning(
                f"同步连接状态: 句柄已失效，重置为断开 (world={self._world_name!r}, store={store!r})"
            )
            self._teardown()
        return self.is_connected()

    # ------------------------------------------------------------------ #
    # 世界管理
    # ------------------------------------------------------------------ #

    async def list_worlds(self) -> List[str]:
        """
        列出数据目录中的所有世界

        Raises:
            StorageUnavailableError: 数据目录无法枚举
        """
        return await asyncio.to_thread(self._scan_worlds)

    def _scan_worlds(self) -> List[str]:
        data_path = self.settings.data_path
        if not data_path.exists():
            return []
        try:
            entries = list(data_path.iterdir())
        except OSError as e:
            raise StorageUnavailableError(str(data_path), str(e)) from e
        names = (self.settings.world_name_from_file(p) for p in entries if p.is_file())
        return sorted(name for name in names if name)

    async def connect(self, world_name: str) -> bool:
        """
        连接到指定世界（不存在则创建），加载全部缓存并初始化向量记忆

        已连接到同一世界时只重新加载缓存；已连接到其他世界时先断开。
        任何一步失败都会回到断开状态。

        Raises:
            WorldConnectionError: 世界名称无效或打开/加载失败
        """
        name = (world_name or "").strip()
        async with self.status.track("connect_to_world"):
            self._validate_world_name(name)

            if self.is_connected():
                if self._world_name == name:
                    logger.info(f"已连接到世界 {name}，重新加载数据")
                    await self._reload_or_rollback(name)
                    await self.vector_memory.initialize()
                    return True
                logger.info(f"切换世界: {self._world_name} -> {name}")
                self._teardown()

            logger.info(f"开始连接世界: {name}")
            try:
                store = await asyncio.to_thread(WorldStore.open, name, self.settings)
            except StorageError as e:
                self._teardown()
                raise WorldConnectionError(f"无法打开世界: {e}", name) from e

            self._store = store
            self._world_name = name
            await self._reload_or_rollback(name)

            self.vector_memory.attach(store)
            ready = await self.vector_memory.initialize()
            logger.info(f"世界 {name} 连接完成 (vector={'ready' if ready else 'unavailable'})")
            return True

    async def _reload_or_rollback(self, name: str) -> None:
        try:
            await self._load_all()
        except Exception as e:
            self._teardown()
            raise WorldConnectionError(f"加载世界数据失败: {e}", name) from e

    def disconnect(self) -> None:
        """断开当前世界，清空所有缓存和向量集合句柄，幂等"""
        if self._store is None and not self._world_name:
            return
        world = self._world_name
        self._teardown()
        logger.info(f"已断开世界: {world}")

    def _teardown(self) -> None:
        store = self._store
        self.vector_memory.detach()
        self._store = None
        self._world_name = ""
        self.characters.clear()
        self.groups.clear()
        self.worldbooks.clear()
        self.config.clear()
        if store is not None:
            store.close()

    async def refresh(self) -> None:
        """重新加载所有缓存（未连接时不做任何事）"""
        if self.is_connected():
            await self._load_all()

    async def _load_all(self) -> None:
        results = await asyncio.gather(
            self.characters.load_all(),
            self.groups.load_all(),
            self.worldbooks.load_all(),
            self.config.load(),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result

    async def delete_world(self, world_name: str) -> bool:
        """
        删除世界数据库文件（当前连接的世界会先断开）

        Returns:
            文件存在并被删除时返回 True
        """
        async with self.status.track("delete_world"):
            self._validate_world_name(world_name)
            if self._world_name == world_name:
                self.disconnect()
            path = self.settings.world_file(world_name)
            try:
                existed = await asyncio.to_thread(self._unlink, path)
            except OSError as e:
                raise StorageError(f"删除世界失败: {e}", details={"world": world_name}) from e
            if existed:
                logger.info(f"世界已删除: {world_name}")
            return existed

    @staticmethod
    def _unlink(path: Path) -> bool:
        if not path.exists():
            return False
        path.unlink()
        return True

    def _validate_world_name(self, name: str) -> None:
        if not name or name in (".", "..") or any(sep in name for sep in ("/", "\\", "\0")):
            raise WorldConnectionError("世界名称无效", name or None)

    # ------------------------------------------------------------------ #
    # 便捷方法
    # ------------------------------------------------------------------ #

    async def init_vector_db(self) -> bool:
        """初始化向量记忆（并发调用共享同一次初始化）"""
        return await self.vector_memory.initialize()

    def get_triggered_worldbooks(self, text: str) -> List[WorldbookData]:
        return self.worldbooks.get_triggered_worldbooks(text)

    def _lookup_character(self, character_id: int):
        return self.characters.cached(character_id)

    # ------------------------------------------------------------------ #
    # 导入导出
    # ------------------------------------------------------------------ #

    async def export_world(self, world_name: Optional[str] = None) -> Dict[str, Any]:
        """
        导出世界为文档（默认导出当前世界）

        Raises:
            NotConnectedError: 未指定世界且未连接
            DataNotFoundError: 指定的世界不存在
        """
        async with self.status.track("export_world"):
            name = world_name or self._world_name
            if not name:
                raise NotConnectedError()
            store, owned = await self._store_for(name, create=False)
            try:
                return await store.run(lambda session: export_document(session, name))
            finally:
                if owned:
                    store.close()

    async def import_world(self, document: Mapping[str, Any], world_name: str) -> bool:
        """
        用文档替换指定世界的数据（世界不存在时创建）

        先校验整个文档，校验失败时不写入任何数据。导入的是当前世界时重新加载缓存。

        Raises:
            ValidationError: 文档结构无效
        """
        async with self.status.track("import_world"):
            self._validate_world_name(world_name)
            doc = validate_document(document)
            store, owned = await self._store_for(world_name, create=True)
            try:
                summary: ImportSummary = await store.run(lambda session: import_document(session, doc))
            finally:
                if owned:
                    store.close()

            if self.is_connected() and self._world_name == world_name:
                await self._load_all()
            logger.info(f"世界 {world_name} 导入完成: {summary.to_dict()}")
            return True

    async def _store_for(self, world_name: str, create: bool) -> Tuple[WorldStore, bool]:
        """返回 (存储句柄, 是否由调用方负责关闭)"""
        if self.is_connected() and self._world_name == world_name:
            return self._store, False
        if not create and not self.settings.world_file(world_name).exists():
            raise DataNotFoundError("世界", world_name)
        try:
            store = await asyncio.to_thread(WorldStore.open, world_name, self.settings)
        except StorageError as e:
            raise WorldConnectionError(f"无法打开世界: {e}", world_name) from e
        return store, True

    def __repr__(self) -> str:
        return f"WorldConnectionManager(world={self.current_world()!r}, connected={self.is_connected()})"
