"""Utility functions for the finance tracker MCP server."""

from datetime import date

from dateutil.relativedelta import relativedelta


# Category types as stored in `categorias.tipo`
INCOME = "Ingreso"
EXPENSE = "Gastos"
CONTRIBUTION = "Aportación"
WITHDRAWAL = "Retiro"
REIMBURSEMENT = "Reembolso"


def parse_date(value: str | date) -> date:
    """Parse an ISO date (or the date part of an ISO timestamp)."""
    if isinstance(value, date):
        return value
    return date.fromisoformat(value[:10])


def add_months(value: date, months: int = 1) -> date:
    """Add calendar months, clamping to the last day of shorter months."""
    return value + relativedelta(months=months)


def add_years(value: date, years: int = 1) -> date:
    """Add calendar years; Feb 29 lands on Feb 28 in non-leap years."""
    return value + relativedelta(years=years)


def tx_amount(tx: dict) -> float:
    """Absolute amount of a transaction: the expense side, or income if there is no expense."""
    expense = tx.get("expense", 0) or 0
    if expense > 0:
        return expense
    return tx.get("income", 0) or 0


def is_pure_expense(tx: dict) -> bool:
    """Check if transaction is a pure expense (expense > 0 AND income == 0)."""
    income = tx.get("income", 0) or 0
    expense = tx.get("expense", 0) or 0
    return expense > 0 and income == 0


def is_pure_income(tx: dict) -> bool:
    """Check if transaction is a pure income (income > 0 AND expense == 0)."""
    income = tx.get("income", 0) or 0
    expense = tx.get("expense", 0) or 0
    return income > 0 and expense == 0


def classify_transaction(
    tx: dict,
    categories: dict[str, dict] | None = None,
) -> str:
    """Classify transaction type.

    The category type wins when known; otherwise the amount sides decide.

    Args:
        tx: Transaction dict with income, expense and category_id.
        categories: Optional dict of categories by ID.

    Returns:
        One of "income", "expense", "contribution", "withdrawal",
        "reimbursement" or "unknown".
    """
    if categories:
        category = categories.get(tx.get("category_id"), {})
        category_type = category.get("type")
        if category_type == INCOME:
            return "income"
        if category_type == EXPENSE:
            return "expense"
        if category_type == CONTRIBUTION:
            return "contribution"
        if category_type == WITHDRAWAL:
            return "withdrawal"
        if category_type == REIMBURSEMENT:
            return "reimbursement"

    if is_pure_expense(tx):
        return "expense"
    if is_pure_income(tx):
        return "income"
    return "unknown"
