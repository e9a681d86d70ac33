"""
业务异常类

定义 rpworld 数据层的异常体系，提供更精确的错误语义
"""


class RpWorldError(Exception):
    """rpworld 基础异常类"""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


# ========== 存储异常 ==========


class StorageError(RpWorldError):
    """存储读写失败"""

    pass


class StorageUnavailableError(StorageError):
    """存储目录无法枚举"""

    def __init__(self, data_dir: str, reason: str):
        super().__init__(
            f"无法枚举世界存储目录: {reason}",
            details={"data_dir": data_dir},
        )
        self.data_dir = data_dir
        self.reason = reason


class StaleHandleError(StorageError):
    """存储句柄已关闭或已被新的连接取代"""

    def __init__(self, world_name: str, generation: int):
        super().__init__(
            "存储句柄已失效",
            details={"world": world_name, "generation": generation},
        )
        self.world_name = world_name
        self.generation = generation


# ========== 连接异常 ==========


class WorldConnectionError(RpWorldError):
    """世界连接失败或未连接"""

    def __init__(self, message: str, world_name: str | None = None):
        super().__init__(
            message,
            details={"world": world_name} if world_name else None,
        )
        self.world_name = world_name


class NotConnectedError(WorldConnectionError):
    """当前没有已连接的世界"""

    def __init__(self):
        super().__init__("当前未连接任何世界")


# ========== 数据异常 ==========


class DataNotFoundError(RpWorldError):
    """数据未找到异常"""

    def __init__(self, entity_type: str, identifier):
        super().__init__(
            f"{entity_type}不存在",
            details={"identifier": identifier},
        )
        self.entity_type = entity_type
        self.identifier = identifier


class ValidationError(RpWorldError):
    """数据验证失败"""

    def __init__(self, field: str, message: str):
        super().__init__(
            f"字段验证失败: {field}",
            details={"field": field, "validation_message": message},
        )
        self.field = field
        self.validation_message = message


# ========== 向量记忆异常 ==========


class EmbeddingError(RpWorldError):
    """embedding 生成失败（网络、配额等）"""

    pass


class VectorIndexError(RpWorldError):
    """向量集合构建或写入失败"""

    pass
