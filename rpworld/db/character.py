"""
Character（角色）模型
"""
from sqlalchemy import String, Text, Integer, Boolean
from sqlalchemy.orm import Mapped, mapped_column

from rpworld.db.base import Base, TimestampMixin


class Character(Base, TimestampMixin):
    """角色模型"""

    __tablename__ = "characters"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True, comment="主键")
    name: Mapped[str] = mapped_column(String(100), nullable=False, index=True, comment="角色名称")
    description: Mapped[str] = mapped_column(Text, default="", nullable=False, comment="简介")
    persona: Mapped[str] = mapped_column(Text, default="", nullable=False, comment="人设")
    greeting: Mapped[str] = mapped_column(Text, default="", nullable=False, comment="开场白")
    personality: Mapped[str] = mapped_column(Text, default="", nullable=False, comment="性格")
    background: Mapped[str] = mapped_column(Text, default="", nullable=False, comment="背景故事")
    avatar_url: Mapped[str] = mapped_column(String(500), default="", nullable=False, comment="头像地址")

    # 同一世界内最多一个主角，由仓库层保证
    is_player: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True, comment="是否主角")
    is_public: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, comment="是否公开")
    allow_edit: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, comment="是否允许编辑")

    def __repr__(self) -> str:
        return f"Character(id={self.id}, name={self.name!r}, is_player={self.is_player})"
