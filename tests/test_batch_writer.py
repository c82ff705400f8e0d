import re
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from acc_recompute.exceptions import BatchSizeMismatchError, PlaceholderMismatchError
from acc_recompute.services.batch_writer import BatchWriter, build_batch_update, check_placeholders
from conftest import fetch_row, insert_expense


def _mock_engine(side_effect):
    engine = MagicMock()
    conn = MagicMock()
    conn.execute.side_effect = side_effect
    engine.begin.return_value.__enter__.return_value = conn
    return engine, conn


def _lock_error():
    return OperationalError("UPDATE", {}, Exception("Lock wait timeout exceeded"))


class TestBuildBatchUpdate:

    def test_case_statement_shape(self):
        rows = [
            {"id": 1, "status": 1, "amount_cny": Decimal("1.00")},
            {"id": 2, "status": 2},
        ]
        sql, params = build_batch_update("acc_expenses", "id", rows, 2)

        assert sql == (
            "UPDATE `acc_expenses` SET "
            "`amount_cny` = CASE `id` WHEN :p0 THEN :p1 ELSE `amount_cny` END, "
            "`status` = CASE `id` WHEN :p2 THEN :p3 WHEN :p4 THEN :p5 ELSE `status` END "
            "WHERE `id` IN (:p6, :p7)"
        )
        assert params == {
            "p0": 1, "p1": Decimal("1.00"),
            "p2": 1, "p3": 1, "p4": 2, "p5": 2,
            "p6": 1, "p7": 2,
        }

    def test_partial_batch_is_rejected(self):
        with pytest.raises(BatchSizeMismatchError):
            build_batch_update("acc_expenses", "id", [{"id": 1, "status": 1}], 2)

    def test_placeholder_count_must_match_params(self):
        check_placeholders("acc_expenses", "UPDATE t SET a = :p0 WHERE id IN (:p1)", {"p0": 1, "p1": 2})

        with pytest.raises(PlaceholderMismatchError) as exc_info:
            check_placeholders("acc_expenses", "UPDATE t SET a = :p0", {"p0": 1, "p1": 2})
        assert exc_info.value.placeholders == 1
        assert exc_info.value.arg_count == 2
        assert "placeholder mismatch" in str(exc_info.value)


class TestBatchWriter:

    def test_batch_success_single_statement(self):
        engine, conn = _mock_engine(None)
        rows = [{"id": i, "status": 1} for i in range(1, 4)]

        failed = BatchWriter(engine).write("acc_expenses", "id", rows, 3)

        assert failed == 0
        assert conn.execute.call_count == 1

    def test_batch_failure_degrades_to_per_row(self):
        # 批量语句失败，逐行写时第 2 行失败，其余行仍然执行
        engine, conn = _mock_engine([_lock_error(), None, _lock_error(), None])
        rows = [{"id": i, "status": 1, "recompute_info": None} for i in range(1, 4)]

        failed = BatchWriter(engine).write("acc_expenses", "id", rows, 3)

        assert failed == 1
        assert conn.execute.call_count == 4
        row_calls = conn.execute.call_args_list[1:]
        assert [c.args[1]["row_id"] for c in row_calls] == [1, 2, 3]
        for c in row_calls:
            assert "AND `status` = :pending" in str(c.args[0])
            assert c.args[1]["pending"] == 2

    def test_size_mismatch_falls_back_without_batch_statement(self):
        engine, conn = _mock_engine(None)
        rows = [{"id": 1, "status": 1}, {"id": 3, "status": 2}]

        with patch.object(BatchWriter, "write_row") as write_row:
            failed = BatchWriter(engine).write("acc_expenses", "id", rows, 3)

        assert failed == 0
        assert write_row.call_count == 2
        conn.execute.assert_not_called()

    def test_placeholder_mismatch_falls_back_to_per_row(self, caplog):
        engine, conn = _mock_engine(None)
        rows = [{"id": 1, "status": 1}, {"id": 2, "status": 2}]

        # 占位符正则匹配不到任何参数，批量语句在执行前被拒绝
        with patch("acc_recompute.services.batch_writer._PLACEHOLDER", re.compile(r":never\d+")), \
                caplog.at_level("ERROR"):
            failed = BatchWriter(engine).write("acc_expenses", "id", rows, 2)

        assert failed == 0
        assert [c.args[1]["row_id"] for c in conn.execute.call_args_list] == [1, 2]
        assert "batch update invariant violated" in caplog.text
        assert "placeholder mismatch" in caplog.text

    def test_writes_rows_against_database(self, engine):
        insert_expense(engine, 1)
        insert_expense(engine, 2)
        insert_expense(engine, 3, status=1)
        rows = [
            {"id": 1, "status": 1, "recompute_info": None, "amount_cny": Decimal("100"),
             "amount_usdt": Decimal("14.00")},
            {"id": 2, "status": 2, "recompute_info": "office_reason=office not found by site_code"},
        ]

        assert BatchWriter(engine, debug=True).write("acc_expenses", "id", rows, 2) == 0

        first = fetch_row(engine, "acc_expenses", 1)
        assert first["status"] == 1
        assert first["amount_usdt"] == pytest.approx(14.0)
        assert first["amount_cny"] == pytest.approx(100.0)
        second = fetch_row(engine, "acc_expenses", 2)
        assert second["status"] == 2
        assert second["recompute_info"] == "office_reason=office not found by site_code"
        assert second["amount_usdt"] is None

    def test_per_row_update_skips_resolved_rows(self, engine):
        insert_expense(engine, 1, status=1)
        BatchWriter(engine).write_row("acc_expenses", "id", {"id": 1, "status": 2, "recompute_info": "x"})
        row = fetch_row(engine, "acc_expenses", 1)
        assert row["status"] == 1
        assert row["recompute_info"] is None
