import os
import sqlite3
import sys
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.pool import StaticPool

# 将项目根目录添加到sys.path，以便导入acc_recompute包
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "../")))

from acc_recompute.models import OfficeInfo, Record
from acc_recompute.schema import TABLE_FIELD_MAPPINGS

# SQLite 没有原生 Decimal，写回金额时按字符串绑定
sqlite3.register_adapter(Decimal, str)

SCHEMA = [
    """
    CREATE TABLE acc_expenses (
        id INTEGER PRIMARY KEY,
        status INTEGER NOT NULL DEFAULT 2,
        currency TEXT,
        entry_date TEXT,
        main_office TEXT,
        sub_office TEXT,
        site_code TEXT,
        site TEXT,
        amount REAL,
        amount_usdt REAL,
        amount_cny REAL,
        converted_amount REAL,
        converted_amount_usdt REAL,
        converted_amount_cny REAL,
        recompute_info TEXT
    )
    """,
    """
    CREATE TABLE acc_channel_info (
        id INTEGER PRIMARY KEY,
        status INTEGER NOT NULL DEFAULT 2,
        main_office TEXT,
        sub_office TEXT,
        site_code TEXT,
        site TEXT,
        recompute_info TEXT
    )
    """,
    """
    CREATE TABLE data_office_main (
        id INTEGER PRIMARY KEY, main_code TEXT, name TEXT, deleted_at TEXT
    )
    """,
    """
    CREATE TABLE data_office_sub (
        id INTEGER PRIMARY KEY, office_main_id INTEGER, sub_code TEXT, name TEXT, deleted_at TEXT
    )
    """,
    """
    CREATE TABLE data_office_site (
        id INTEGER PRIMARY KEY, office_sub_id INTEGER, site_code TEXT, name TEXT, deleted_at TEXT
    )
    """,
    """
    CREATE TABLE sys_currency_rate_record (
        id INTEGER PRIMARY KEY, date_at TEXT, currency_from TEXT, currency_to TEXT, rate REAL, deleted_at TEXT
    )
    """,
]


@pytest.fixture
def engine():
    """内存 SQLite，替代 MySQL 执行原生 SQL"""
    eng = create_engine("sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False})
    with eng.begin() as conn:
        for ddl in SCHEMA:
            conn.execute(text(ddl))
    yield eng
    eng.dispose()


@pytest.fixture
def seed_offices(engine):
    """总部 M1 / 分部 S1 / 站点 T1，另有一条已删除的站点"""
    with engine.begin() as conn:
        conn.execute(text("INSERT INTO data_office_main (id, main_code, name) VALUES (1, 'M1', '华东总部')"))
        conn.execute(text("INSERT INTO data_office_sub (id, office_main_id, sub_code, name) VALUES (1, 1, 'S1', '上海分部')"))
        conn.execute(text("INSERT INTO data_office_site (id, office_sub_id, site_code, name) VALUES (1, 1, 'T1', '一号站')"))
        conn.execute(text(
            "INSERT INTO data_office_site (id, office_sub_id, site_code, name, deleted_at) "
            "VALUES (2, 1, 'T9', '已删除站点', '2024-01-01 00:00:00')"
        ))
    return engine


@pytest.fixture
def seed_rates(engine):
    """2024-01-02 的汇率：CNY->USDT、USDT->CNY、HKD->CNY、HKD->USDT"""
    rows = [
        (1, "2024-01-02 08:00:00", "CNY", "USDT", 0.14),
        (2, "2024-01-02 08:00:00", "USDT", "CNY", 7.1),
        (3, "2024-01-02 08:00:00", "HKD", "CNY", 0.91),
        (4, "2024-01-02 08:00:00", "HKD", "USDT", 0.128),
    ]
    with engine.begin() as conn:
        for row in rows:
            conn.execute(
                text("INSERT INTO sys_currency_rate_record (id, date_at, currency_from, currency_to, rate) "
                     "VALUES (:id, :d, :f, :t, :r)"),
                {"id": row[0], "d": row[1], "f": row[2], "t": row[3], "r": row[4]},
            )
    return engine


def insert_expense(engine, row_id, currency="CNY", entry_date="2024-01-02 10:30:00", amount=100.0,
                   converted_amount=None, site_code=None, sub_office=None, status=2):
    with engine.begin() as conn:
        conn.execute(
            text("INSERT INTO acc_expenses (id, status, currency, entry_date, site_code, sub_office, amount, "
                 "converted_amount) VALUES (:id, :status, :currency, :entry_date, :site_code, :sub_office, "
                 ":amount, :converted_amount)"),
            {"id": row_id, "status": status, "currency": currency, "entry_date": entry_date,
             "site_code": site_code, "sub_office": sub_office, "amount": amount,
             "converted_amount": converted_amount},
        )


def fetch_row(engine, table, row_id):
    with engine.connect() as conn:
        return conn.execute(text(f"SELECT * FROM {table} WHERE id = :id"), {"id": row_id}).mappings().one()


@pytest.fixture
def expenses_mapping():
    return TABLE_FIELD_MAPPINGS["acc_expenses"]


@pytest.fixture
def channel_mapping():
    return TABLE_FIELD_MAPPINGS["acc_channel_info"]


@pytest.fixture
def office_t1():
    return OfficeInfo(main_code="M1", main_office="华东总部", sub_code="S1", sub_office="上海分部",
                      site_code="T1", site="T1")


@pytest.fixture
def make_record():
    def _make(record_id=1, currency="CNY", entry_date=date(2024, 1, 2), site_code="T1", sub_code="",
              amount="100", converted_amount=None):
        return Record(
            id=record_id,
            currency=currency,
            entry_date=entry_date,
            site_code=site_code,
            sub_code=sub_code,
            amounts={
                "amount": Decimal(amount) if amount is not None else None,
                "amount_usdt": None,
                "amount_cny": None,
                "converted_amount": Decimal(converted_amount) if converted_amount is not None else None,
                "converted_amount_usdt": None,
                "converted_amount_cny": None,
            },
        )
    return _make
