"""
WorldConfig（世界配置）模型

每个世界只有一条记录
"""
from sqlalchemy import String, Integer
from sqlalchemy.orm import Mapped, mapped_column

from rpworld.db.base import Base

# 单例记录的固定主键
CONFIG_ROW_ID = 1


class WorldConfig(Base):
    """世界配置模型"""

    __tablename__ = "config"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=CONFIG_ROW_ID, comment="主键")
    api_key: Mapped[str] = mapped_column(String(500), default="", nullable=False, comment="API密钥")
    api_url: Mapped[str] = mapped_column(String(500), default="", nullable=False, comment="API地址")
    model: Mapped[str] = mapped_column(String(200), default="", nullable=False, comment="模型名称")

    def __repr__(self) -> str:
        return f"WorldConfig(api_url={self.api_url!r}, model={self.model!r})"
