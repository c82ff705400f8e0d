import logging
from typing import Dict, Iterable, Optional, Tuple

from sqlalchemy.engine import Engine

from ..models import OfficeInfo, Record
from ..utils import in_query

# 站点 -> 分部 -> 总部；按站点主键倒序，先写入者为准，重复站点代码取最新一条
SITE_OFFICE_SQL = """
    SELECT t.site_code AS site_code, m.main_code AS main_code, m.name AS main_name,
           s.sub_code AS sub_code, s.name AS sub_name, t.name AS site_name
    FROM data_office_site t
    JOIN data_office_sub s ON s.id = t.office_sub_id
    JOIN data_office_main m ON m.id = s.office_main_id
    WHERE t.deleted_at IS NULL AND s.deleted_at IS NULL AND m.deleted_at IS NULL
      AND t.site_code IN :codes
    ORDER BY t.id DESC
"""

SUB_OFFICE_SQL = """
    SELECT s.sub_code AS sub_code, m.main_code AS main_code, m.name AS main_name, s.name AS sub_name
    FROM data_office_sub s
    JOIN data_office_main m ON m.id = s.office_main_id
    WHERE s.deleted_at IS NULL AND m.deleted_at IS NULL
      AND s.sub_code IN :codes
    ORDER BY s.id DESC
"""


class OfficeCacheBuilder:
    """按批次预取办公室层级，得到 站点代码 / 分部代码 -> OfficeInfo 两张映射"""

    def __init__(self, engine: Engine, logger: Optional[logging.Logger] = None):
        self.engine = engine
        self.logger = logger or logging.getLogger(__name__)

    def build(self, records: Iterable[Record]) -> Tuple[Dict[str, OfficeInfo], Dict[str, OfficeInfo]]:
        site_codes = set()
        sub_codes = set()
        for r in records:
            if r.site_code:
                site_codes.add(r.site_code)
            if r.sub_code:
                sub_codes.add(r.sub_code)

        site_map: Dict[str, OfficeInfo] = {}
        sub_map: Dict[str, OfficeInfo] = {}
        if not site_codes and not sub_codes:
            return site_map, sub_map

        with self.engine.connect() as conn:
            if site_codes:
                rows = conn.execute(in_query(SITE_OFFICE_SQL, "codes"), {"codes": sorted(site_codes)}).mappings()
                for row in rows:
                    if row["site_code"] in site_map:
                        continue
                    # site 字段写回站点代码
                    site_map[row["site_code"]] = OfficeInfo(
                        main_code=row["main_code"] or "", main_office=row["main_name"] or "",
                        sub_code=row["sub_code"] or "", sub_office=row["sub_name"] or "",
                        site_code=row["site_code"], site=row["site_code"],
                    )

            if sub_codes:
                rows = conn.execute(in_query(SUB_OFFICE_SQL, "codes"), {"codes": sorted(sub_codes)}).mappings()
                for row in rows:
                    if row["sub_code"] in sub_map:
                        continue
                    sub_map[row["sub_code"]] = OfficeInfo(
                        main_code=row["main_code"] or "", main_office=row["main_name"] or "",
                        sub_code=row["sub_code"], sub_office=row["sub_name"] or "",
                    )

        self.logger.debug(f"办公室缓存: site={len(site_map)}/{len(site_codes)} sub={len(sub_map)}/{len(sub_codes)}")
        return site_map, sub_map
