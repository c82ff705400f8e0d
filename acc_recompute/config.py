import os
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import quote_plus

import yaml
from dotenv import load_dotenv

from .exceptions import ConfigError

# 加载环境变量
load_dotenv()

DEFAULT_BATCH_SIZE = 100
DEFAULT_IDLE_SECONDS = 30.0
DEFAULT_TABLE_PAUSE_SECONDS = 1.0
LOG_FILE_NAME = "log.txt"


def _positive_int(value: Any, default: int) -> int:
    """非法或非正数时回退到默认值"""
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def _non_negative_float(value: Any, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if number >= 0 else default


def _truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


class Settings:
    """重算服务配置（YAML 文件 + 环境变量覆盖）"""

    def __init__(self, mode: str = "development", batch_size: int = DEFAULT_BATCH_SIZE,
                 debug: bool = False, log_dir: str = ".", database_url: Optional[str] = None,
                 idle_seconds: float = DEFAULT_IDLE_SECONDS,
                 table_pause_seconds: float = DEFAULT_TABLE_PAUSE_SECONDS):
        self.MODE = mode
        self.RECOMPUTE_BATCH_SIZE = _positive_int(batch_size, DEFAULT_BATCH_SIZE)
        self.IS_DEBUG = debug
        self.LOG_DIR = log_dir or "."
        self.DATABASE_URL = database_url
        self.IDLE_SECONDS = _non_negative_float(idle_seconds, DEFAULT_IDLE_SECONDS)
        self.TABLE_PAUSE_SECONDS = _non_negative_float(table_pause_seconds, DEFAULT_TABLE_PAUSE_SECONDS)

    # 连接池参数：最多 5 个空闲、10 个打开的连接，连接存活 1 小时后回收
    POOL_SIZE = 5
    MAX_OVERFLOW = 5
    POOL_RECYCLE = 3600

    @property
    def log_file(self) -> str:
        """日志文件路径，目录不存在时自动创建"""
        os.makedirs(self.LOG_DIR, exist_ok=True)
        return os.path.join(self.LOG_DIR, LOG_FILE_NAME)

    def get_database_url(self) -> str:
        if not self.DATABASE_URL:
            raise ConfigError("未配置数据库连接：请设置 database.development.dsn、DATABASE_URL 或 DB_* 环境变量")
        return self.DATABASE_URL


def _read_yaml(path: Optional[str]) -> Dict[str, Any]:
    if not path:
        return {}
    cfg_path = Path(path)
    if not cfg_path.exists():
        return {}
    try:
        with cfg_path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"配置文件解析失败 {cfg_path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"配置文件格式错误 {cfg_path}: 顶层必须是映射")
    return data


def _database_url_from_env() -> Optional[str]:
    """从 DB_* 环境变量拼接 mysql+pymysql 连接串"""
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    host = os.getenv("DB_HOST")
    if not host:
        return None
    password = os.getenv("DB_PASSWORD", "")
    return (
        f"mysql+pymysql://{os.getenv('DB_USER', 'root')}:{quote_plus(password)}@"
        f"{host}:{int(os.getenv('DB_PORT', '3306'))}/{os.getenv('DB_DATABASE', '')}"
        "?charset=utf8mb4"
    )


def load_settings(path: Optional[str] = "config.yaml") -> Settings:
    """
    加载配置：先读 YAML，再用环境变量覆盖
    :param path: YAML 配置文件路径，不存在时只使用环境变量
    """
    data = _read_yaml(path)
    database = (data.get("database") or {}).get("development") or {}
    dirs = data.get("dirs") or {}

    return Settings(
        mode=os.getenv("RECOMPUTE_MODE", data.get("mode") or "development"),
        batch_size=os.getenv("RECOMPUTE_BATCH_SIZE", data.get("recompute_batch_size")),
        debug=_truthy(os.getenv("RECOMPUTE_DEBUG", data.get("isdebug", 0))),
        log_dir=os.getenv("RECOMPUTE_LOG_DIR", dirs.get("logs") or "."),
        database_url=_database_url_from_env() or database.get("dsn"),
        idle_seconds=os.getenv("RECOMPUTE_IDLE_SECONDS", DEFAULT_IDLE_SECONDS),
        table_pause_seconds=os.getenv("RECOMPUTE_TABLE_PAUSE_SECONDS", DEFAULT_TABLE_PAUSE_SECONDS),
    )
