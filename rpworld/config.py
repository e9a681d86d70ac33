"""
应用配置管理

使用 Pydantic Settings 管理环境变量配置
"""
from enum import Enum
from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class EmptyGroupPolicy(str, Enum):
    """删除角色后，成员为空的群组如何处理"""

    RETAIN = "retain"  # 保留空群组
    DELETE = "delete"  # 同一事务内删除空群组


class Settings(BaseSettings):
    """应用配置"""

    # 存储配置
    DATA_DIR: str = Field(default="data/worlds", description="世界数据库目录")
    DB_PREFIX: str = Field(default="world_", description="世界数据库文件名前缀")
    DB_SUFFIX: str = Field(default=".db", description="世界数据库文件扩展名")
    SQL_ECHO: bool = Field(default=False, description="是否打印 SQL 语句")

    # 实体规则
    EMPTY_GROUP_POLICY: EmptyGroupPolicy = Field(
        default=EmptyGroupPolicy.RETAIN, description="删除角色后空群组的处理策略"
    )

    # 向量记忆
    VECTOR_COLLECTION: str = Field(default="vectors", description="向量集合名称")
    VECTOR_FIELD: str = Field(default="vector", description="向量字段名称")

    # Embedding（OpenAI 兼容接口）
    EMBEDDING_API_KEY: Optional[str] = Field(default=None, description="Embedding API密钥")
    EMBEDDING_API_BASE: str = Field(
        default="https://api.siliconflow.cn/v1", description="Embedding API 地址"
    )
    EMBEDDING_MODEL: str = Field(default="Qwen/Qwen3-Embedding-4B", description="Embedding 模型")
    EMBEDDING_TIMEOUT: float = Field(default=30.0, description="Embedding 请求超时（秒）")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def data_path(self) -> Path:
        return Path(self.DATA_DIR)

    def world_file(self, world_name: str) -> Path:
        """返回世界对应的数据库文件路径"""
        return self.data_path / f"{self.DB_PREFIX}{world_name}{self.DB_SUFFIX}"

    def world_name_from_file(self, path: Path) -> Optional[str]:
        """从数据库文件名还原世界名称，不符合命名规则时返回 None"""
        name = path.name
        if not (name.startswith(self.DB_PREFIX) and name.endswith(self.DB_SUFFIX)):
            return None
        stem = name[len(self.DB_PREFIX): len(name) - len(self.DB_SUFFIX)]
        return stem or None


# 全局配置实例
settings = Settings()


def get_settings() -> Settings:
    """获取配置实例"""
    return settings
