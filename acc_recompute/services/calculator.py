"""
单条记录的重算逻辑（纯函数，不访问数据库）

输入记录与本批次的办公室 / 汇率缓存，输出待写回的字段及失败原因：
- 办公室：优先按站点代码解析，其次按分部代码；未声明或为空则无需解析
- 金额：按记录币种换算出 CNY 与 USDT 金额，保留两位小数
- 全部成功 status=1，否则 status=2 并在 recompute_info 记录原因，下一轮继续重试
"""
from decimal import Decimal
from typing import Any, Dict, Optional, Sequence, Tuple

from ..models import (CNY, STATUS_PENDING, STATUS_RESOLVED, USDT, AmountFieldSet, OfficeInfo, RateKey,
                      Record, TableMapping)
from ..schema import (MAIN_OFFICE_NAME_COLUMN, REASON_COLUMN, SITE_NAME_COLUMN, STATUS_COLUMN,
                      SUB_OFFICE_NAME_COLUMN)
from ..utils import append_reason, build_reason, normalize_currency, round2
from .rate_service import RateNotFound, lookup_rate


def resolve_office(mapping: TableMapping, record: Record, site_map: Dict[str, OfficeInfo],
                   sub_map: Dict[str, OfficeInfo]) -> Tuple[Optional[OfficeInfo], str]:
    if mapping.site_code and record.site_code:
        office = site_map.get(record.site_code)
        if office is None:
            return None, "office not found by site_code"
        return office, ""
    if mapping.sub_code and record.sub_code:
        office = sub_map.get(record.sub_code)
        if office is None:
            return None, "office not found by sub_code"
        return office, ""
    return None, ""


def convert_amount(base: Decimal, currency: str, record: Record,
                   rate_map: Dict[RateKey, Decimal]) -> Tuple[Decimal, Decimal]:
    """
    换算单个金额，返回 (cny, usdt)

    :raises RateNotFound: 所需汇率缺失
    """
    day = record.entry_date
    if currency == CNY:
        return base, round2(base * lookup_rate(rate_map, day, CNY, USDT))
    if currency == USDT:
        return round2(base * lookup_rate(rate_map, day, USDT, CNY)), base
    # 其他币种需要两个方向的汇率都存在
    rate_cny = lookup_rate(rate_map, day, currency, CNY)
    rate_usdt = lookup_rate(rate_map, day, currency, USDT)
    return round2(base * rate_cny), round2(base * rate_usdt)


def _office_columns(mapping: TableMapping, office: OfficeInfo) -> Dict[str, Any]:
    update: Dict[str, Any] = {}
    if office.main_code and mapping.main_code:
        update[mapping.main_code] = office.main_code
    if office.sub_code and mapping.sub_code:
        update[mapping.sub_code] = office.sub_code
    if office.site_code and mapping.site_code:
        update[mapping.site_code] = office.site_code
    # 名称字段后写，与代码字段同名时以名称为准
    if office.main_office:
        update[MAIN_OFFICE_NAME_COLUMN] = office.main_office
    if office.sub_office:
        update[SUB_OFFICE_NAME_COLUMN] = office.sub_office
    if office.site:
        update[SITE_NAME_COLUMN] = office.site
    return update


def compute_update(mapping: TableMapping, sets: Sequence[AmountFieldSet], record: Record,
                   site_map: Dict[str, OfficeInfo], sub_map: Dict[str, OfficeInfo],
                   rate_map: Dict[RateKey, Decimal]) -> Tuple[Dict[str, Any], str]:
    """
    计算一条记录需要写回的字段

    :return: (update, reason)，reason 为空表示全部成功
    """
    office, office_reason = resolve_office(mapping, record, site_map, sub_map)
    all_ok = office_reason == ""
    rate_reason = ""
    update: Dict[str, Any] = {}

    if mapping.requires_conversion:
        currency = normalize_currency(record.currency)
        for s in sets:
            if not s.base:
                continue
            # 金额为空（不是零）不做换算
            base = record.amounts.get(s.base)
            if base is None:
                continue
            if not currency or record.entry_date is None:
                all_ok = False
                if not currency and "currency NULL" not in rate_reason:
                    rate_reason = append_reason(rate_reason, "currency NULL")
                if record.entry_date is None and "entry_date NULL" not in rate_reason:
                    rate_reason = append_reason(rate_reason, "entry_date NULL")
                continue
            try:
                amount_cny, amount_usdt = convert_amount(base, currency, record, rate_map)
            except RateNotFound as e:
                all_ok = False
                rate_reason = append_reason(rate_reason, str(e))
                continue
            update[s.cny] = amount_cny
            update[s.usdt] = amount_usdt

    if office is not None:
        update.update(_office_columns(mapping, office))

    reason = build_reason(office_reason, rate_reason)
    if all_ok:
        update[STATUS_COLUMN] = STATUS_RESOLVED
        update[REASON_COLUMN] = None
    else:
        update[STATUS_COLUMN] = STATUS_PENDING
        update[REASON_COLUMN] = reason
    return update, reason
