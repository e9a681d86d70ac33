"""
rpworld - 角色扮演聊天应用的本地数据层

每个"世界"是一个独立的 SQLite 数据库，保存角色、群组、世界书、配置和聊天记录，
并附带由聊天消息 embedding 构建的向量记忆索引。
"""
from rpworld.world.manager import WorldConnectionManager
from rpworld.world.status import OperationStatus

__version__ = "0.1.0"

__all__ = [
    "WorldConnectionManager",
    "OperationStatus",
    "__version__",
]
