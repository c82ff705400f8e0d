"""
待重算表的字段映射注册表

每张表声明主键、办公室代码字段以及若干金额字段组（原币 / USDT / CNY）。
acc_channel_info 只补办公室信息，不做币种换算。
"""
from typing import Dict, List, Sequence, Tuple

from .models import STATUS_PENDING, AmountFieldSet, TableMapping

# 写回办公室名称的字段（在代码字段之后写入，同名字段以名称为准）
MAIN_OFFICE_NAME_COLUMN = "main_office"
SUB_OFFICE_NAME_COLUMN = "sub_office"
SITE_NAME_COLUMN = "site"

STATUS_COLUMN = "status"
REASON_COLUMN = "recompute_info"


def _sets(*triples: Tuple[str, str, str]) -> Tuple[AmountFieldSet, ...]:
    return tuple(AmountFieldSet(base=b, usdt=u, cny=c) for b, u, c in triples)


def _upper_sets(*bases: str) -> Tuple[AmountFieldSet, ...]:
    """目标字段后缀为大写 _USDT / _CNY 的金额字段组"""
    return _sets(*((b, f"{b}_USDT", f"{b}_CNY") for b in bases))


def _lower_sets(*bases: str) -> Tuple[AmountFieldSet, ...]:
    return _sets(*((b, f"{b}_usdt", f"{b}_cny") for b in bases))


def _office_mapping(**kwargs) -> TableMapping:
    return TableMapping(main_code="main_office", sub_code="sub_office", site_code="site_code", **kwargs)


TABLE_FIELD_MAPPINGS: Dict[str, TableMapping] = {
    "acc_cashbook": TableMapping(
        main_code="main_office", sub_code="sub_code",
        amount_sets=_lower_sets("amount", "converted_amount"),
    ),
    "acc_expenses": _office_mapping(amount_sets=_lower_sets("amount", "converted_amount")),
    "acc_borrow_lend": _office_mapping(amount_sets=_lower_sets("amount", "converted_amount")),
    "acc_recharge_withdraw": _office_mapping(amount_sets=(
        _lower_sets("recharge_amount", "withdraw_amount", "commission", "discount")
        + _upper_sets("first_topup_amount")
        + _lower_sets("manual_score_increase", "manual_score_decrease", "total_score_balance")
    )),
    "acc_channel_info": _office_mapping(requires_conversion=False),
    "acc_ad_performance_analysis": _office_mapping(amount_sets=_upper_sets(
        "first_topup_amount", "repeat_topup_amount",
        "d2_topup_amount", "d3_topup_amount", "d4_topup_amount", "d5_topup_amount",
        "d6_topup_amount", "d7_topup_amount", "d14_topup_amount", "d15_topup_amount",
        "d30_topup_amount", "d45_topup_amount", "d60_topup_amount",
    )),
    "acc_balance_sheet": _office_mapping(amount_sets=_upper_sets(
        "ending_amount", "income_amount", "non_member_income", "income_fee",
        "expense_amount", "non_member_expense", "expense_fee", "balance_difference",
        "opening_balance", "backend_revenue", "order_adjustment", "converted_amount",
        "balance_verification", "difference",
    )),
    "acc_revenue_expense_adjustments": _office_mapping(amount_sets=_lower_sets("amount", "converted_amount")),
    "acc_operational_information": _office_mapping(amount_sets=_upper_sets(
        "valid_bet", "cashback", "profit_and_loss",
    )),
}

# 调度顺序
TABLES: List[str] = list(TABLE_FIELD_MAPPINGS)


def pending_predicate(mapping: TableMapping) -> str:
    """游标扫描的待重算条件；需要换算的表还要求币种与入账日期齐全"""
    where_sql = f"{STATUS_COLUMN} = {STATUS_PENDING}"
    if mapping.requires_conversion:
        where_sql += " AND entry_date IS NOT NULL AND currency IS NOT NULL AND currency <> ''"
    return where_sql


def amount_columns(sets: Sequence[AmountFieldSet]) -> List[str]:
    """金额字段去重后排序，保证查询列顺序稳定"""
    cols = set()
    for s in sets:
        cols.update(s.columns())
    return sorted(cols)
