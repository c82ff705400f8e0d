from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

# 记录状态：1-已完成重算，2-待重算
STATUS_RESOLVED = 1
STATUS_PENDING = 2

# 汇率目标币种
CNY = "CNY"
USDT = "USDT"

# (日期 YYYY-MM-DD, 源币种, 目标币种)
RateKey = Tuple[str, str, str]


class AmountFieldSet(BaseModel):
    """金额字段组：原币金额 + USDT 金额 + CNY 金额"""
    model_config = ConfigDict(frozen=True)

    base: str = Field("", description="原币金额字段")
    usdt: str = Field("", description="USDT 金额字段")
    cny: str = Field("", description="CNY 金额字段")

    @model_validator(mode="after")
    def _check_targets(self):
        if self.base and not (self.usdt and self.cny):
            raise ValueError(f"金额字段 {self.base} 必须同时配置 usdt 与 cny 目标字段")
        return self

    def columns(self) -> List[str]:
        return [c for c in (self.base, self.usdt, self.cny) if c]


class TableMapping(BaseModel):
    """单张表的字段映射"""
    model_config = ConfigDict(frozen=True)

    id_column: str = Field("id", description="主键字段")
    main_code: str = Field("", description="总部代码字段")
    sub_code: str = Field("", description="分部代码字段")
    site_code: str = Field("", description="站点代码字段")
    amount_sets: Tuple[AmountFieldSet, ...] = Field(default_factory=tuple, description="金额字段组")
    requires_conversion: bool = Field(True, description="是否需要币种换算（只补办公室信息的表为 False）")

    @model_validator(mode="after")
    def _check_amount_sets(self):
        seen: Dict[str, AmountFieldSet] = {}
        for s in self.amount_sets:
            if not s.base:
                continue
            other = seen.get(s.base)
            if other is not None and other != s:
                raise ValueError(f"金额字段 {s.base} 映射到多组目标字段")
            seen[s.base] = s
        return self


class Record(BaseModel):
    """一批次内读取到的一行待重算数据"""
    id: int
    currency: Optional[str] = None
    entry_date: Optional[date] = None
    sub_code: str = ""
    site_code: str = ""
    amounts: Dict[str, Optional[Decimal]] = Field(default_factory=dict)


class OfficeInfo(BaseModel):
    """办公室层级信息：总部 / 分部 / 站点"""
    model_config = ConfigDict(frozen=True)

    main_code: str = ""
    main_office: str = ""
    sub_code: str = ""
    sub_office: str = ""
    site_code: str = ""
    site: str = ""
