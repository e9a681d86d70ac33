"""
数据库基础模型类

提供所有模型的通用字段和方法
"""
from datetime import datetime
from typing import Any
from sqlalchemy import DateTime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now() -> datetime:
    """当前 UTC 时间（naive，与 SQLite DateTime 列保持一致）"""
    return datetime.utcnow()


class Base(DeclarativeBase):
    """所有模型的基类"""

    def to_dict(self) -> dict[str, Any]:
        """
        将模型实例转换为字典

        Returns:
            字典表示，包含所有列
        """
        return {column.name: getattr(self, column.name) for column in self.__table__.columns}

    def __repr__(self) -> str:
        class_name = self.__class__.__name__
        attrs = ", ".join(
            f"{column.name}={getattr(self, column.name)!r}"
            for column in self.__table__.columns
            if column.name != "vector"
        )
        return f"{class_name}({attrs})"


class TimestampMixin:
    """时间戳混入类，提供创建时间和更新时间字段"""

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, nullable=False, comment="创建时间"
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utc_now,
        onupdate=utc_now,
        nullable=False,
        comment="更新时间",
    )
