from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, List, Optional

from sqlalchemy import bindparam, text
from sqlalchemy.sql.elements import TextClause

CENT = Decimal("0.01")


def round2(value: Decimal) -> Decimal:
    """保留两位小数，四舍五入（远离零方向）"""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_decimal(value: Any) -> Optional[Decimal]:
    """数据库数值转 Decimal；浮点数先转字符串，避免二进制误差"""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def to_date(value: Any) -> Optional[date]:
    """入账时间按自然日截断（丢弃时分秒）"""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = str(value).strip()
    if len(raw) < 10:
        return None
    # MySQL 零日期（0000-00-00）等非法值按缺失处理
    try:
        return date.fromisoformat(raw[:10])
    except ValueError:
        return None


def normalize_currency(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip().upper()


def append_reason(cur: str, add: str) -> str:
    if not cur:
        return add
    if not add:
        return cur
    return f"{cur}; {add}"


def build_reason(office_reason: str, rate_reason: str) -> str:
    parts: List[str] = []
    if office_reason:
        parts.append(f"office_reason={office_reason}")
    if rate_reason:
        parts.append(f"rate_reason={rate_reason}")
    return "; ".join(parts)


def in_query(sql: str, *names: str) -> TextClause:
    """构建带 IN (...) 展开参数的原生查询"""
    return text(sql).bindparams(*(bindparam(name, expanding=True) for name in names))
