"""Tests for utility functions."""

from datetime import date

from finance_tracker_mcp.utils import (
    add_months,
    add_years,
    classify_transaction,
    is_pure_expense,
    is_pure_income,
    parse_date,
    tx_amount,
)


class TestParseDate:
    """Test date parsing."""

    def test_iso_date(self):
        assert parse_date("2024-06-15") == date(2024, 6, 15)

    def test_iso_timestamp(self):
        assert parse_date("2024-06-15T00:00:00+00:00") == date(2024, 6, 15)

    def test_date_passthrough(self):
        value = date(2024, 6, 15)
        assert parse_date(value) is value


class TestCalendarArithmetic:
    """Test month and year steps."""

    def test_add_month(self):
        assert add_months(date(2024, 1, 15)) == date(2024, 2, 15)

    def test_add_month_clamps(self):
        assert add_months(date(2024, 1, 31)) == date(2024, 2, 29)
        assert add_months(date(2023, 1, 31)) == date(2023, 2, 28)

    def test_add_month_year_rollover(self):
        assert add_months(date(2024, 12, 10)) == date(2025, 1, 10)

    def test_subtract_months(self):
        assert add_months(date(2024, 6, 30), -12) == date(2023, 6, 30)

    def test_add_year(self):
        assert add_years(date(2024, 6, 1)) == date(2025, 6, 1)

    def test_add_year_leap_day(self):
        assert add_years(date(2024, 2, 29)) == date(2025, 2, 28)


class TestTransactionHelpers:
    """Test transaction amount helpers."""

    def test_tx_amount_expense(self):
        assert tx_amount({"income": 0, "expense": 179.0}) == 179.0

    def test_tx_amount_income(self):
        assert tx_amount({"income": 45000.0, "expense": 0}) == 45000.0

    def test_tx_amount_nulls(self):
        assert tx_amount({"income": None, "expense": None}) == 0

    def test_is_pure_expense(self):
        assert is_pure_expense({"income": 0, "expense": 100})
        assert not is_pure_expense({"income": 100, "expense": 100})
        assert not is_pure_expense({"income": 100, "expense": 0})

    def test_is_pure_income(self):
        assert is_pure_income({"income": 100, "expense": 0})
        assert not is_pure_income({"income": 100, "expense": 100})
        assert not is_pure_income({})


class TestClassifyTransaction:
    """Test transaction type classification."""

    CATEGORIES = {
        "cat-salary": {"type": "Ingreso"},
        "cat-food": {"type": "Gastos"},
        "cat-savings": {"type": "Aportación"},
        "cat-atm": {"type": "Retiro"},
        "cat-refund": {"type": "Reembolso"},
    }

    def test_category_type_wins(self):
        tx = {"income": 0, "expense": 500, "category_id": "cat-refund"}
        assert classify_transaction(tx, self.CATEGORIES) == "reimbursement"

    def test_all_category_types(self):
        expected = {
            "cat-salary": "income",
            "cat-food": "expense",
            "cat-savings": "contribution",
            "cat-atm": "withdrawal",
            "cat-refund": "reimbursement",
        }
        for category_id, kind in expected.items():
            tx = {"income": 0, "expense": 1, "category_id": category_id}
            assert classify_transaction(tx, self.CATEGORIES) == kind

    def test_unknown_category_falls_back_to_amounts(self):
        tx = {"income": 0, "expense": 100, "category_id": "missing"}
        assert classify_transaction(tx, self.CATEGORIES) == "expense"

    def test_without_categories(self):
        assert classify_transaction({"income": 100, "expense": 0}) == "income"
        assert classify_transaction({"income": 100, "expense": 100}) == "unknown"
