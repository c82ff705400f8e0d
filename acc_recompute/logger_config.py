"""
统一日志配置模块
整个进程只有一条日志流：文件（按大小轮转）+ 控制台
"""
import logging
from logging.handlers import RotatingFileHandler

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# 单个日志文件最大 100MB，保留 7 个备份
MAX_BYTES = 100 * 1024 * 1024
BACKUP_COUNT = 7

_handlers = []


def setup_logging(log_file: str, debug: bool = False) -> logging.Logger:
    """
    配置根 logger，各模块通过 logging.getLogger(__name__) 输出到同一条日志流

    Args:
        log_file: 日志文件路径
        debug: 是否输出 DEBUG 级别日志（含 SQL）

    Returns:
        配置好的根 logger
    """
    level = logging.DEBUG if debug else logging.INFO
    root = logging.getLogger()
    root.setLevel(level)

    # 避免重复添加handler
    while _handlers:
        handler = _handlers.pop()
        root.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=MAX_BYTES,
        backupCount=BACKUP_COUNT,
        encoding="utf-8"
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)

    for handler in (file_handler, console_handler):
        root.addHandler(handler)
        _handlers.append(handler)

    # SQLAlchemy 执行的 SQL 只在调试模式下输出
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if debug else logging.WARNING)
    return root
