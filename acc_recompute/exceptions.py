class RecomputeError(Exception):
    """重算服务异常基类"""


class ConfigError(RecomputeError):
    """配置缺失或非法，启动阶段即终止"""


class BatchWriteError(RecomputeError):
    """批量 UPDATE 的内部约束被破坏（属于程序缺陷，不可重试）"""


class BatchSizeMismatchError(BatchWriteError):
    def __init__(self, table: str, actual: int, expected: int):
        self.table = table
        self.actual = actual
        self.expected = expected
        super().__init__(f"batchUpdate[{table}]: ids count {actual} != batchSize {expected}")


class PlaceholderMismatchError(BatchWriteError):
    def __init__(self, table: str, placeholders: int, arg_count: int):
        self.table = table
        self.placeholders = placeholders
        self.arg_count = arg_count
        super().__init__(f"batchUpdate[{table}]: placeholder mismatch sql ?={placeholders} args={arg_count}")
