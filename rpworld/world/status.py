"""
操作状态

进程内共享的 loading 标记和最近一次错误，仅供界面展示，不阻止后续调用
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional
from loguru import logger

from rpworld.exceptions import RpWorldError


class OperationStatus:
    """loading / error 状态槽"""

    def __init__(self):
        self._pending = 0
        self._error: Optional[str] = None
        self._error_operation: Optional[str] = None

    @property
    def loading(self) -> bool:
        """是否有修改类操作正在执行"""
        return self._pending > 0

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def error_operation(self) -> Optional[str]:
        return self._error_operation

    def clear_error(self) -> None:
        self._error = None
        self._error_operation = None

    def record_error(self, error: Exception, operation: str = "") -> None:
        logger.error(f"Database error in {operation}: {error}")
        self._error = str(error)
        self._error_operation = operation

    @asynccontextmanager
    async def track(self, operation: str, loading: bool = True) -> AsyncGenerator[None, None]:
        """
        包裹一次操作：开始时清空错误，失败时记录错误后继续抛出

        Args:
            operation: 操作名称，写入日志和错误槽
            loading: 是否在执行期间置位 loading
        """
        self.clear_error()
        if loading:
            self._pending += 1
        try:
            yield
        except RpWorldError as e:
            self.record_error(e, operation)
            raise
        finally:
            if loading:
                self._pending -= 1
