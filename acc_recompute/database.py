import logging

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from .config import Settings

logger = logging.getLogger(__name__)


def create_db_engine(settings: Settings, probe: bool = True) -> Engine:
    """
    创建带连接池的数据库引擎

    连接池上限固定：pool_size 个空闲连接，pool_size + max_overflow 个打开连接，
    连接超过 pool_recycle 秒后回收。
    """
    engine = create_engine(
        settings.get_database_url(),
        pool_size=settings.POOL_SIZE,
        max_overflow=settings.MAX_OVERFLOW,
        pool_recycle=settings.POOL_RECYCLE,
        pool_pre_ping=True,
    )
    if probe:
        # 测试连接
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info(f"数据库连接成功 (mode: {settings.MODE})")
    return engine
