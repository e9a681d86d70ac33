"""
世界连接管理模块
"""
from rpworld.world.status import OperationStatus
from rpworld.world.manager import WorldConnectionManager

__all__ = [
    "OperationStatus",
    "WorldConnectionManager",
]
