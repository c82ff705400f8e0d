import logging
import time
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Sequence

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ..models import AmountFieldSet, TableMapping
from ..schema import TABLE_FIELD_MAPPINGS, TABLES, pending_predicate
from .batch_writer import BatchWriter
from .calculator import compute_update
from .cursor_service import fetch_ids_after
from .office_service import OfficeCacheBuilder
from .rate_service import RateCacheBuilder
from .record_service import RecordPrefetcher


class TableRecomputeService:
    """单张表的一轮重算：游标分批 -> 预取 -> 缓存 -> 计算 -> 写回"""

    def __init__(self, engine: Engine, batch_size: int, debug: bool = False,
                 mappings: Optional[Dict[str, TableMapping]] = None,
                 logger: Optional[logging.Logger] = None):
        self.engine = engine
        self.batch_size = batch_size
        self.debug = debug
        self.mappings = mappings if mappings is not None else TABLE_FIELD_MAPPINGS
        self.logger = logger or logging.getLogger(__name__)
        self.prefetcher = RecordPrefetcher(engine, logger=self.logger)
        self.office_builder = OfficeCacheBuilder(engine, logger=self.logger)
        self.rate_builder = RateCacheBuilder(engine, logger=self.logger)
        self.writer = BatchWriter(engine, debug=debug, logger=self.logger)

    def handle_table(self, table: str) -> bool:
        """
        处理一张表直到本轮没有待重算的 id

        :return: True 表示本轮处理过至少一个批次（或取 id 失败），下一轮可能仍有数据
        """
        mapping = self.mappings.get(table)
        if mapping is None:
            self.logger.warning(f"[{table}] mapping not found, skip")
            return False

        sets = list(mapping.amount_sets)
        where_sql = pending_predicate(mapping)
        last_id = 0
        any_processed = False

        while True:
            try:
                ids = fetch_ids_after(self.engine, table, mapping.id_column, where_sql,
                                      self.batch_size, last_id, logger=self.logger)
            except SQLAlchemyError as e:
                self.logger.error(f"[{table}] fetch ids error: {e}")
                return True
            if not ids:
                return any_processed

            any_processed = True
            last_id = ids[-1]
            self.logger.info(f"[{table}] batch size={len(ids)} range={ids[0]}-{last_id}")
            self._process_batch(table, mapping, sets, ids)

    def _process_batch(self, table: str, mapping: TableMapping, sets: Sequence[AmountFieldSet],
                       ids: Sequence[int]) -> None:
        # 预取失败时放弃本批次，记录仍是待重算状态，下一轮重试
        try:
            records = self.prefetcher.fetch(table, ids, mapping, sets)
        except (SQLAlchemyError, ValueError, ArithmeticError) as e:
            self.logger.error(f"[{table}] fetch records batch error: {e}")
            return
        try:
            site_map, sub_map = self.office_builder.build(records.values())
        except SQLAlchemyError as e:
            self.logger.error(f"[{table}] prefetch offices error: {e}")
            return
        try:
            rate_map = self.rate_builder.build(records.values())
        except (SQLAlchemyError, ArithmeticError) as e:
            self.logger.error(f"[{table}] prefetch rates error: {e}")
            return

        updates = []
        for row_id in ids:
            record = records.get(row_id)
            if record is None:
                continue
            update, reason = compute_update(mapping, sets, record, site_map, sub_map, rate_map)
            if reason:
                self.logger.debug(f"[recompute][{table}][{row_id}] pending: {reason}")
            update[mapping.id_column] = row_id
            updates.append(update)

        if not updates:
            return
        failed = self.writer.write(table, mapping.id_column, updates, len(ids))
        if failed:
            self.logger.warning(f"[recompute][{table}] {failed}/{len(updates)} rows failed in slow path")


class RecomputeScheduler:
    """常驻调度：循环处理所有表，空闲时休眠，并输出心跳日志"""

    def __init__(self, table_service: TableRecomputeService, tables: Sequence[str] = TABLES,
                 idle_seconds: float = 30.0, table_pause_seconds: float = 1.0,
                 sleep: Callable[[float], None] = time.sleep,
                 logger: Optional[logging.Logger] = None):
        self.table_service = table_service
        self.tables = list(tables)
        self.idle_seconds = idle_seconds
        self.table_pause_seconds = table_pause_seconds
        self.sleep = sleep
        self.logger = logger or logging.getLogger(__name__)

    def run_sweep(self) -> bool:
        """处理一轮所有表，返回是否有表仍有待重算数据"""
        any_pending = False
        for table in self.tables:
            self.sleep(self.table_pause_seconds)
            if self.table_service.handle_table(table):
                any_pending = True

        now = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        status = "pending" if any_pending else "idle"
        self.logger.info(f"[HEARTBEAT] {now} tables=all status={status}")
        return any_pending

    def run_forever(self) -> None:
        self.logger.info(f"start recompute batch_size={self.table_service.batch_size} tables={len(self.tables)}")
        while True:
            if not self.run_sweep():
                self.sleep(self.idle_seconds)
