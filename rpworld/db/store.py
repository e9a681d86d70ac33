"""
世界存储模块

每个世界对应一个独立的 SQLite 数据库文件。提供引擎初始化、Session 上下文、
schema 版本迁移，以及带代数（generation）标记的存储句柄。
"""
import asyncio
import itertools
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Generator, List, TypeVar
from sqlalchemy import create_engine, Engine, inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session
from loguru import logger

from rpworld.config import Settings
from rpworld.db.base import Base
from rpworld.exceptions import StaleHandleError, StorageError

# 导入所有模型，确保 create_all 能建出全部集合
from rpworld.db import character, group, worldbook, chat_message, world_config, vector_record  # noqa: F401

T = TypeVar("T")

# 当前 schema 版本，新建数据库直接写入该版本
SCHEMA_VERSION = 2

# 旧版本升级时需要补充的列：目标版本 -> {表名: [(列名, 列定义)]}
MIGRATION_PLAN: dict[int, dict[str, list[tuple[str, str]]]] = {
    2: {
        "characters": [
            ("is_public", "BOOLEAN NOT NULL DEFAULT 0"),
            ("allow_edit", "BOOLEAN NOT NULL DEFAULT 1"),
        ],
        "groups": [
            ("is_private", "BOOLEAN NOT NULL DEFAULT 0"),
            ("allow_invites", "BOOLEAN NOT NULL DEFAULT 1"),
        ],
        "worldbooks": [
            ("extra", "JSON NOT NULL DEFAULT '{}'"),
        ],
    },
}

# 存储句柄代数，每次打开递增
_generations = itertools.count(1)


class WorldStore:
    """单个世界的存储句柄"""

    def __init__(self, world_name: str, path: Path, echo: bool = False):
        """
        初始化存储句柄（不做迁移，通常通过 open() 创建）

        Args:
            world_name: 世界名称
            path: SQLite 数据库文件路径
            echo: 是否打印 SQL 语句（调试用）
        """
        self.world_name = world_name
        self.path = Path(path)
        self.generation = next(_generations)
        self._closed = False
        # 提交与关闭互斥，关闭后不再有事务落盘
        self._commit_lock = threading.Lock()

        self._engine = create_engine(
            f"sqlite:///{self.path}",
            echo=echo,
            connect_args={"check_same_thread": False},
        )
        self._session_factory = sessionmaker(
            bind=self._engine, autocommit=False, autoflush=False, expire_on_commit=False
        )

    @classmethod
    def open(cls, world_name: str, settings: Settings) -> "WorldStore":
        """
        打开（不存在则创建）世界数据库并执行迁移

        Raises:
            StorageError: 目录或数据库无法打开
        """
        path = settings.world_file(world_name)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            store = cls(world_name, path, echo=settings.SQL_ECHO)
            store.migrate()
        except (OSError, SQLAlchemyError) as e:
            raise StorageError(f"无法打开世界数据库: {e}", details={"world": world_name}) from e
        logger.info(f"世界存储已打开: {world_name} (generation={store.generation})")
        return store

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def schema_version(self) -> int:
        """读取数据库中记录的 schema 版本"""
        with self._engine.connect() as conn:
            return int(conn.execute(text("PRAGMA user_version")).scalar() or 0)

    def table_names(self) -> List[str]:
        return inspect(self._engine).get_table_names()

    def migrate(self) -> None:
        """
        建表并按 MIGRATION_PLAN 升级旧库

        说明：
        - 新库直接写入 SCHEMA_VERSION。
        - 仅在列缺失时执行 ALTER TABLE ADD COLUMN，不做删除/重命名等破坏性变更。
        - 数据库版本高于当前代码时拒绝打开。
        """
        existing_tables = set(self.table_names())
        current = self.schema_version

        if current > SCHEMA_VERSION:
            raise StorageError(
                "数据库版本高于当前程序支持的版本",
                details={"world": self.world_name, "version": current, "supported": SCHEMA_VERSION},
            )

        Base.metadata.create_all(bind=self._engine)

        if existing_tables and current < SCHEMA_VERSION:
            with self._engine.begin() as conn:
                for version in sorted(v for v in MIGRATION_PLAN if v > current):
                    for table_name, columns in MIGRATION_PLAN[version].items():
                        if table_name not in existing_tables:
                            continue
                        existing_columns = {
                            col["name"] for col in inspect(conn).get_columns(table_name)
                        }
                        for column_name, column_def in columns:
                            if column_name in existing_columns:
                                continue
                            conn.execute(
                                text(f'ALTER TABLE "{table_name}" ADD COLUMN {column_name} {column_def}')
                            )
                            logger.warning(
                                f"检测到旧版数据库，已补充列: {table_name}.{column_name}"
                            )
            logger.info(f"世界 {self.world_name} 已从版本 {current} 迁移到 {SCHEMA_VERSION}")

        if current != SCHEMA_VERSION:
            with self._engine.begin() as conn:
                conn.execute(text(f"PRAGMA user_version = {SCHEMA_VERSION}"))

    def ensure_open(self) -> None:
        """
        Raises:
            StaleHandleError: 句柄已关闭
        """
        if self._closed:
            raise StaleHandleError(self.world_name, self.generation)

    def get_session(self) -> Session:
        """
        获取新的 Session 实例

        注意：调用方负责关闭 Session，建议使用 session_scope 上下文管理器
        """
        self.ensure_open()
        return self._session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        提供事务上下文管理器，自动提交/回滚

        用法:
            with store.session_scope() as session:
                character_crud.create(session, name="艾琳")
                # 自动提交，或发生异常时自动回滚
        """
        session = self.get_session()
        try:
            yield session
            with self._commit_lock:
                self.ensure_open()
                session.commit()
            logger.debug("事务已提交")
        except Exception as e:
            session.rollback()
            logger.error(f"事务回滚: {e}")
            raise
        finally:
            session.close()

    def run_sync(self, work: Callable[[Session], T]) -> T:
        """
        在一个事务中执行 work，并将底层异常统一转换为 StorageError

        Args:
            work: 接收 Session 的函数，返回值原样返回
        """
        self.ensure_open()
        try:
            with self.session_scope() as session:
                return work(session)
        except SQLAlchemyError as e:
            if self._closed:
                raise StaleHandleError(self.world_name, self.generation) from e
            raise StorageError(f"存储操作失败: {e}", details={"world": self.world_name}) from e

    async def run(self, work: Callable[[Session], T]) -> T:
        """在线程池中执行 run_sync，存储访问期间让出事件循环"""
        self.ensure_open()
        return await asyncio.to_thread(self.run_sync, work)

    def close(self) -> None:
        """关闭句柄，幂等"""
        with self._commit_lock:
            if self._closed:
                return
            self._closed = True
        self._engine.dispose()
        logger.info(f"世界存储已关闭: {self.world_name} (generation={self.generation})")

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"WorldStore(world={self.world_name!r}, generation={self.generation}, {state})"
