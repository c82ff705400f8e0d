import logging
from typing import Dict, List, Optional, Sequence

from sqlalchemy.engine import Engine

from ..models import STATUS_PENDING, AmountFieldSet, Record, TableMapping
from ..schema import STATUS_COLUMN, amount_columns
from ..utils import in_query, to_date, to_decimal


class RecordPrefetcher:
    """批量预取一个批次内所有待重算记录需要的字段"""

    def __init__(self, engine: Engine, logger: Optional[logging.Logger] = None):
        self.engine = engine
        self.logger = logger or logging.getLogger(__name__)

    def _build_columns(self, mapping: TableMapping, amount_cols: List[str]) -> List[str]:
        cols = [f"`{mapping.id_column}` AS id"]
        if mapping.requires_conversion:
            cols.extend(["`currency`", "`entry_date`"])
        if mapping.sub_code:
            cols.append(f"`{mapping.sub_code}` AS sub_code")
        if mapping.site_code:
            cols.append(f"`{mapping.site_code}` AS site_code")
        cols.extend(f"`{c}`" for c in amount_cols)
        return cols

    def fetch(self, table: str, ids: Sequence[int], mapping: TableMapping,
              sets: Optional[Sequence[AmountFieldSet]] = None) -> Dict[int, Record]:
        """
        按 id 批量读取记录，只返回仍处于待重算状态的行

        :param sets: 本次需要的金额字段组，为空时使用表的默认字段组
        :return: {id: Record}
        """
        if not ids:
            return {}

        sets = list(sets or mapping.amount_sets)
        amount_cols = amount_columns(sets)

        # 金额字段为空，除只补办公室信息的表外都视为配置错误
        if mapping.requires_conversion and not amount_cols:
            self.logger.error(f"[{table}] 未配置金额字段，跳过本批次 | sets={sets}")
            return {}
        self.logger.debug(f"[{table}] amount columns: {amount_cols}")

        cols = self._build_columns(mapping, amount_cols)
        sql = (
            f"SELECT {', '.join(cols)} FROM `{table}` "
            f"WHERE `{mapping.id_column}` IN :ids AND `{STATUS_COLUMN}` = :status"
        )
        self.logger.debug(f"[{table}] {sql}")

        with self.engine.connect() as conn:
            rows = conn.execute(in_query(sql, "ids"), {"ids": list(ids), "status": STATUS_PENDING}).mappings().all()

        records: Dict[int, Record] = {}
        for row in rows:
            record = Record(
                id=int(row["id"]),
                currency=row["currency"] if mapping.requires_conversion else None,
                entry_date=to_date(row["entry_date"]) if mapping.requires_conversion else None,
                sub_code=(row["sub_code"] or "") if mapping.sub_code else "",
                site_code=(row["site_code"] or "") if mapping.site_code else "",
                amounts={c: to_decimal(row[c]) for c in amount_cols},
            )
            records[record.id] = record
        return records
