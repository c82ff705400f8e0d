import logging
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, Optional

from sqlalchemy.engine import Engine

from ..models import CNY, USDT, RateKey, Record
from ..utils import in_query, normalize_currency, to_date, to_decimal

RATE_SQL = f"""
    SELECT DATE(date_at) AS date_at, currency_from, currency_to, rate
    FROM sys_currency_rate_record
    WHERE deleted_at IS NULL
      AND currency_to IN ('{CNY}', '{USDT}')
      AND DATE(date_at) IN :dates
      AND currency_from IN :currencies
    ORDER BY id DESC
"""


class RateNotFound(LookupError):
    def __init__(self, key: RateKey):
        self.key = key
        day, from_cur, to_cur = key
        super().__init__(f"lookupRate: no rate for {day} {from_cur}->{to_cur}")


def rate_key(day: date, from_cur: str, to_cur: str) -> RateKey:
    return day.isoformat(), normalize_currency(from_cur), normalize_currency(to_cur)


def lookup_rate(rate_map: Dict[RateKey, Decimal], day: date, from_cur: str, to_cur: str) -> Decimal:
    """查汇率缓存；同币种直接返回 1，不查表"""
    key = rate_key(day, from_cur, to_cur)
    if key[1] == key[2]:
        return Decimal("1")
    try:
        return rate_map[key]
    except KeyError:
        raise RateNotFound(key) from None


class RateCacheBuilder:
    """按批次一次性预取 (日期, 币种) 对应的 CNY / USDT 汇率"""

    def __init__(self, engine: Engine, logger: Optional[logging.Logger] = None):
        self.engine = engine
        self.logger = logger or logging.getLogger(__name__)

    def build(self, records: Iterable[Record]) -> Dict[RateKey, Decimal]:
        dates = set()
        currencies = set()
        for r in records:
            # 缺币种或入账日期的记录在逐条计算时失败，这里不处理
            if r.entry_date is None or r.currency is None:
                continue
            dates.add(r.entry_date.isoformat())
            currencies.add(normalize_currency(r.currency))

        rate_map: Dict[RateKey, Decimal] = {}
        if not dates or not currencies:
            return rate_map

        with self.engine.connect() as conn:
            rows = conn.execute(
                in_query(RATE_SQL, "dates", "currencies"),
                {"dates": sorted(dates), "currencies": sorted(currencies)},
            ).mappings().all()

        for row in rows:
            day = to_date(row["date_at"])
            if day is None or row["rate"] is None:
                continue
            key = rate_key(day, row["currency_from"], row["currency_to"])
            # 按 id 倒序，只保留最新一条
            if key not in rate_map:
                rate_map[key] = to_decimal(row["rate"])

        self.logger.debug(f"汇率缓存: {len(rate_map)} 条 (dates={len(dates)}, currencies={len(currencies)})")
        return rate_map
