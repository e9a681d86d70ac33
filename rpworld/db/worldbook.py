"""
WorldbookEntry（世界书条目）模型

参考 SillyTavern WorldInfo：当对话文本中出现条目关键词时，条目内容被注入上下文
"""
from typing import Dict, Any
from sqlalchemy import String, Text, Integer, JSON
from sqlalchemy.orm import Mapped, mapped_column

from rpworld.db.base import Base, TimestampMixin


class WorldbookEntry(Base, TimestampMixin):
    """世界书条目模型"""

    __tablename__ = "worldbooks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True, comment="主键")
    title: Mapped[str] = mapped_column(String(200), default="", nullable=False, comment="标题")
    keywords: Mapped[str] = mapped_column(
        Text, default="", nullable=False, comment="触发关键词（逗号或中文逗号分隔）"
    )
    content: Mapped[str] = mapped_column(Text, default="", nullable=False, comment="条目内容")

    # 客户端自定义的其他字段原样保存
    extra: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False, comment="扩展字段")

    def __repr__(self) -> str:
        return f"WorldbookEntry(id={self.id}, title={self.title!r}, keywords={self.keywords!r})"
