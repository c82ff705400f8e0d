import logging
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ..exceptions import BatchSizeMismatchError, BatchWriteError, PlaceholderMismatchError
from ..models import STATUS_PENDING
from ..schema import STATUS_COLUMN

_PLACEHOLDER = re.compile(r":p\d+\b")


def check_placeholders(table: str, sql: str, params: Dict[str, Any]) -> None:
    """:pN 占位符数量必须与参数数量一致"""
    placeholders = len(_PLACEHOLDER.findall(sql))
    if placeholders != len(params):
        raise PlaceholderMismatchError(table, placeholders, len(params))


def build_batch_update(table: str, id_column: str, rows: Sequence[Dict[str, Any]],
                       expected_size: int) -> Tuple[str, Dict[str, Any]]:
    """
    把多行更新合成一条 UPDATE：每个字段一个 CASE id WHEN ... THEN ... ELSE 原值 END

    字段按字典序排列，CASE 的参数在前，IN (...) 的 id 参数在后。

    :raises BatchSizeMismatchError: 行数与本批次请求的 id 数不一致
    :raises PlaceholderMismatchError: 占位符数量与参数数量不一致
    """
    if len(rows) != expected_size:
        raise BatchSizeMismatchError(table, len(rows), expected_size)

    params: Dict[str, Any] = {}

    def bind(value: Any) -> str:
        name = f"p{len(params)}"
        params[name] = value
        return f":{name}"

    cases: Dict[str, List[Tuple[Any, Any]]] = {}
    ids: List[Any] = []
    for row in rows:
        row_id = row[id_column]
        ids.append(row_id)
        for col, val in row.items():
            if col == id_column:
                continue
            cases.setdefault(col, []).append((row_id, val))

    set_clauses = []
    for col in sorted(cases):
        whens = " ".join(f"WHEN {bind(row_id)} THEN {bind(val)}" for row_id, val in cases[col])
        set_clauses.append(f"`{col}` = CASE `{id_column}` {whens} ELSE `{col}` END")

    in_placeholders = ", ".join(bind(row_id) for row_id in ids)
    sql = f"UPDATE `{table}` SET {', '.join(set_clauses)} WHERE `{id_column}` IN ({in_placeholders})"

    check_placeholders(table, sql, params)
    return sql, params


class BatchWriter:
    """批量写回：优先一条 CASE UPDATE，失败时降级为逐行 UPDATE"""

    def __init__(self, engine: Engine, debug: bool = False, logger: Optional[logging.Logger] = None):
        self.engine = engine
        self.debug = debug
        self.logger = logger or logging.getLogger(__name__)

    def write_batch(self, table: str, id_column: str, rows: Sequence[Dict[str, Any]], expected_size: int) -> None:
        """一条语句、一个事务写完整个批次"""
        if not rows:
            return
        sql, params = build_batch_update(table, id_column, rows, expected_size)
        if self.debug:
            self.logger.debug(f"[SQL][{table}] {sql} | args={params}")
        with self.engine.begin() as conn:
            conn.execute(text(sql), params)

    def write_row(self, table: str, id_column: str, row: Dict[str, Any]) -> None:
        """逐行写回，仍限定只更新待重算的行"""
        values = {col: val for col, val in row.items() if col != id_column}
        if not values:
            return
        params: Dict[str, Any] = {}
        set_clauses = []
        for i, col in enumerate(sorted(values)):
            params[f"v{i}"] = values[col]
            set_clauses.append(f"`{col}` = :v{i}")
        params["row_id"] = row[id_column]
        params["pending"] = STATUS_PENDING
        sql = (
            f"UPDATE `{table}` SET {', '.join(set_clauses)} "
            f"WHERE `{id_column}` = :row_id AND `{STATUS_COLUMN}` = :pending"
        )
        with self.engine.begin() as conn:
            conn.execute(text(sql), params)

    def write(self, table: str, id_column: str, rows: Sequence[Dict[str, Any]], expected_size: int) -> int:
        """
        写回一个批次

        :return: 降级为逐行写时失败的行数；批量写成功返回 0
        """
        if not rows:
            return 0
        try:
            self.write_batch(table, id_column, rows, expected_size)
            return 0
        except BatchWriteError as e:
            self.logger.error(f"[recompute][{table}] batch update invariant violated: {e}, fallback to per-row")
        except SQLAlchemyError as e:
            self.logger.warning(f"[recompute][{table}] batch update failed: {e}, fallback to per-row")

        failed = 0
        for row in rows:
            try:
                self.write_row(table, id_column, row)
            except SQLAlchemyError as e:
                failed += 1
                self.logger.error(f"[recompute][{table}][{row.get(id_column)}] slow-path error: {e}")
        return failed
