"""
ChatMessage（聊天消息）模型
"""
from datetime import datetime
from sqlalchemy import String, Text, Integer, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from rpworld.db.base import Base, utc_now


class ChatMessage(Base):
    """聊天消息模型，只追加，按会话批量删除"""

    __tablename__ = "chat_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True, comment="主键")
    session_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True, comment="会话ID")
    role: Mapped[str] = mapped_column(String(20), nullable=False, comment="角色（user/assistant/system）")
    character_name: Mapped[str] = mapped_column(String(100), default="", nullable=False, comment="发言角色名")
    content: Mapped[str] = mapped_column(Text, default="", nullable=False, comment="消息内容")
    timestamp: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, nullable=False, index=True, comment="发送时间"
    )
