"""
Group（群聊）模型
"""
from typing import List
from sqlalchemy import String, Text, Integer, Boolean, JSON
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql.elements import quoted_name

from rpworld.db.base import Base, TimestampMixin


class Group(Base, TimestampMixin):
    """群组模型"""

    # GROUPS 在 SQLite 中是关键字
    __tablename__ = quoted_name("groups", True)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True, comment="主键")
    name: Mapped[str] = mapped_column(String(100), nullable=False, comment="群组名称")
    description: Mapped[str] = mapped_column(Text, default="", nullable=False, comment="简介")
    avatar_url: Mapped[str] = mapped_column(String(500), default="", nullable=False, comment="头像地址")

    # 有序的成员角色 ID 列表
    character_ids: Mapped[List[int]] = mapped_column(
        JSON, default=list, nullable=False, comment="成员角色ID列表"
    )
    is_private: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, comment="是否私密")
    allow_invites: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, comment="是否允许邀请")

    def __repr__(self) -> str:
        return f"Group(id={self.id}, name={self.name!r}, character_ids={self.character_ids!r})"
