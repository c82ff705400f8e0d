import logging
from typing import List, Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine


def fetch_ids_after(engine: Engine, table: str, id_column: str, where_sql: str, batch_size: int,
                    last_id: int = 0, logger: Optional[logging.Logger] = None) -> List[int]:
    """
    按主键游标分页读取待重算的 id

    每次返回 id > last_id 的前 batch_size 个 id（升序）；下一次以本批最大 id 作为游标，
    直到返回空列表，表示本轮扫描结束。

    :param where_sql: 待重算条件（由注册表生成，不含用户输入）
    """
    logger = logger or logging.getLogger(__name__)
    sql = (
        f"SELECT `{id_column}` FROM `{table}` WHERE ({where_sql}) AND `{id_column}` > :last_id "
        f"ORDER BY `{id_column}` ASC LIMIT :limit"
    )
    with engine.connect() as conn:
        rows = conn.execute(text(sql), {"last_id": last_id, "limit": batch_size}).fetchall()

    ids = [int(row[0]) for row in rows if row[0] is not None]
    logger.debug(f"[{table}] 游标 {last_id} 之后取到 {len(ids)} 个待重算 id")
    return ids
