"""Annual payment tracking for categories flagged with a yearly cadence."""

from datetime import date
from typing import Any

from .database import Database
from .utils import EXPENSE, add_years, parse_date


ANNUAL_TRACKING = "anual"
INACTIVE_ANNUAL_PAYMENTS = "inactive_annual_payments"


class InactivePaymentStore:
    """Persisted set of tracked-payment ids the user switched off."""

    def __init__(self, db: Database, kind: str = INACTIVE_ANNUAL_PAYMENTS):
        self.db = db
        self.kind = kind

    def get(self) -> set[str]:
        """Return the ids currently marked inactive."""
        return self.db.get_flags(self.kind)

    def toggle(self, payment_id: str) -> bool:
        """Flip one id and return whether it is active afterwards."""
        now_active = payment_id in self.get()
        self.db.set_flag(self.kind, payment_id, flagged=not now_active)
        return now_active


def is_annual_category(category: dict) -> bool:
    """Check if a category is an expense category flagged for annual tracking."""
    return (
        category.get("type") == EXPENSE
        and (category.get("tracking_frequency") or "").lower() == ANNUAL_TRACKING
    )


def track_annual_payments(
    categories: list[dict],
    transactions: list[dict],
    inactive_ids: set[str] | None = None,
) -> list[dict[str, Any]]:
    """Build one tracked payment per annual category that has any expense.

    Args:
        categories: Snapshot of categories.
        transactions: Snapshot of transactions.
        inactive_ids: Category ids switched off by the user.

    Returns:
        Tracked payments sorted by next payment date.
    """
    inactive_ids = inactive_ids or set()
    payments = []

    for category in categories:
        if not is_annual_category(category):
            continue

        history = [
            tx for tx in transactions
            if tx.get("category_id") == category["id"] and (tx.get("expense") or 0) > 0
        ]
        if not history:
            continue
        history.sort(key=lambda tx: (tx["date"], tx["id"]), reverse=True)

        last = history[0]
        last_date = parse_date(last["date"])
        payments.append({
            "id": category["id"],
            "category_id": category["id"],
            "category_name": category.get("category"),
            "subcategory_name": category.get("subcategory"),
            "last_payment": {
                "date": last_date.isoformat(),
                "amount": last["expense"],
            },
            "next_payment": add_years(last_date).isoformat(),
            "payment_history": [
                {"id": tx["id"], "date": tx["date"], "amount": tx["expense"], "memo": tx.get("memo") or ""}
                for tx in history
            ],
            "total_paid": round(sum(tx["expense"] for tx in history), 2),
            "active": category["id"] not in inactive_ids,
        })

    payments.sort(key=lambda p: (p["next_payment"], p["id"]))
    return payments


def estimated_annual_total(payments: list[dict[str, Any]]) -> float:
    """Sum of the last payment of every active tracked payment."""
    return sum(p["last_payment"]["amount"] for p in payments if p["active"])


def payment_status(next_payment: str | date, today: date) -> dict[str, Any]:
    """Describe how close a projected payment is.

    Returns:
        {"status": "overdue" | "upcoming" | "within_3_months" | "later",
         "days": int, "months": int (only for "later")}
    """
    days = (parse_date(next_payment) - today).days
    if days < 0:
        return {"status": "overdue", "days": abs(days)}
    if days <= 30:
        return {"status": "upcoming", "days": days}
    if days <= 90:
        return {"status": "within_3_months", "days": days}
    return {"status": "later", "days": days, "months": days // 30}
