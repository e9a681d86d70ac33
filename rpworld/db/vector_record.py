"""
VectorRecord（向量记录）模型

由聊天消息派生，保存其 embedding，与 ChatMessage 一一对应（可缺失）
"""
from datetime import datetime
from typing import List
from sqlalchemy import String, Text, Integer, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column

from rpworld.db.base import Base


class VectorRecord(Base):
    """向量记录模型"""

    __tablename__ = "vectors"

    message_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False, comment="消息ID")
    content: Mapped[str] = mapped_column(Text, default="", nullable=False, comment="消息内容")
    character_name: Mapped[str] = mapped_column(String(100), default="", nullable=False, comment="发言角色名")
    role: Mapped[str] = mapped_column(String(20), default="", nullable=False, comment="消息角色")
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False, comment="消息时间")
    session_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True, comment="会话ID")
    vector: Mapped[List[float]] = mapped_column(JSON, nullable=False, comment="embedding 向量")

    def __repr__(self) -> str:
        return f"VectorRecord(message_id={self.message_id}, session_id={self.session_id!r}, dim={len(self.vector or [])})"
