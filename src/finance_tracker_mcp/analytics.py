"""Analytics business logic for finance tracker MCP tools."""

from collections import Counter
from datetime import date, datetime
from typing import Any

from .annual import (
    InactivePaymentStore,
    estimated_annual_total,
    is_annual_category,
    payment_status,
    track_annual_payments,
)
from .database import SYNCED_TABLES, Database
from .recurring import detect_services, is_recurring_category
from .service_namer import ServiceClassifier
from .utils import add_months, classify_transaction


# ============================================================================
# Tools
# ============================================================================

async def detect_subscriptions(
    db: Database,
    classifier: ServiceClassifier | None = None,
    lookback_months: int = 12,
    category_id: str | None = None,
    min_occurrences: int = 1,
    today: date | None = None,
) -> dict[str, Any]:
    """Detect subscriptions and other recurring charges.

    "What subscriptions do I pay?", "When is Netflix charged next?"

    Args:
        db: Database instance.
        classifier: Service naming strategy; keyword lookup when None.
        lookback_months: Number of months to analyze (default 12).
        category_id: Only analyze this category.
        min_occurrences: Hide groups with fewer payments than this.
        today: Reference date (defaults to today).

    Returns:
        Dictionary with detected services and monthly/yearly estimates.
    """
    today = today or date.today()
    start = add_months(today, -lookback_months).isoformat()

    transactions = db.get_transactions(start_date=start, end_date=today.isoformat())
    categories = db.get_categories()

    services = await detect_services(
        transactions,
        categories,
        today,
        classifier=classifier,
        lookback_months=lookback_months,
        category_id=category_id,
    )
    services = [s for s in services if s["occurrences"] >= min_occurrences]

    total_monthly = sum(s["monthly_equivalent"] for s in services)
    frequencies = Counter(s["frequency"] for s in services)

    return {
        "period": {"start": start, "end": today.isoformat()},
        "services": services,
        "total_found": len(services),
        "by_frequency": dict(frequencies),
        "total_monthly_estimate": round(total_monthly, 2),
        "total_yearly_estimate": round(total_monthly * 12, 2),
        "total_paid": round(sum(s["total_paid"] for s in services), 2),
    }


def get_annual_payments(
    db: Database,
    show_inactive: bool = False,
    today: date | None = None,
) -> dict[str, Any]:
    """List payments tracked once a year (insurance, memberships, taxes).

    "When is my car insurance due?", "How much do I pay yearly?"

    Args:
        db: Database instance.
        show_inactive: Include payments switched off by the user.
        today: Reference date for payment status (defaults to today).

    Returns:
        Dictionary with tracked payments and the active annual total.
    """
    today = today or date.today()
    store = InactivePaymentStore(db)

    payments = track_annual_payments(
        db.get_categories(),
        db.get_transactions(),
        inactive_ids=store.get(),
    )
    for payment in payments:
        payment["status"] = payment_status(payment["next_payment"], today)

    annual_total = estimated_annual_total(payments)
    active_count = sum(1 for p in payments if p["active"])
    listed = [p for p in payments if show_inactive or p["active"]]

    return {
        "payments": listed,
        "total_tracked": len(payments),
        "active_count": active_count,
        "inactive_count": len(payments) - active_count,
        "estimated_annual_total": round(annual_total, 2),
        "estimated_monthly_total": round(annual_total / 12, 2),
    }


def toggle_annual_payment(db: Database, category_id: str) -> dict[str, Any]:
    """Switch a tracked annual payment between active and inactive.

    Args:
        db: Database instance.
        category_id: Id of the annual-tracked category.

    Returns:
        Dictionary with the new state.
    """
    category = next((c for c in db.get_categories() if c["id"] == category_id), None)
    if category is None:
        return {"error": f"Unknown category: {category_id}", "category_id": category_id}
    if not is_annual_category(category):
        return {
            "error": f"Category is not tracked as an annual payment: {category_id}",
            "category_id": category_id,
        }

    active = InactivePaymentStore(db).toggle(category_id)
    return {"category_id": category_id, "active": active}


# ============================================================================
# Resources
# ============================================================================

def get_accounts_resource(db: Database) -> dict[str, Any]:
    """Get accounts list for LLM context."""
    accounts = []
    for row in db.get_accounts():
        if row["sold"]:
            continue
        accounts.append({
            "id": row["id"],
            "name": row["name"],
            "type": row["type"],
            "currency": row["currency"],
            "opening_balance": row["opening_balance"],
            "market_value": row["market_value"],
        })

    return {"accounts": accounts, "total": len(accounts)}


def get_categories_resource(db: Database) -> dict[str, Any]:
    """Get categories grouped by type and parent category for LLM context."""
    categories = db.get_categories()
    by_id = {c["id"]: c for c in categories}

    usage = Counter(
        classify_transaction(tx, by_id) for tx in db.get_transactions()
    )

    tree: dict[str, dict[str, list[dict[str, Any]]]] = {}
    for row in categories:
        type_key = row["type"] or "Sin tipo"
        parent = row["category"] or "Sin categoría"
        tree.setdefault(type_key, {}).setdefault(parent, []).append({
            "id": row["id"],
            "subcategory": row["subcategory"],
            "tracking_frequency": row["tracking_frequency"],
            "recurring": is_recurring_category(row),
        })

    return {
        "categories": tree,
        "total": len(categories),
        "transactions_by_type": dict(usage),
    }


def get_sync_status_resource(db: Database) -> dict[str, Any]:
    """Get sync status and cache statistics."""
    last_sync_time = db.get_meta("last_sync_time")

    cache_stats = {table: db.count_table(table) for table in SYNCED_TABLES}
    cursors = {table: db.get_sync_cursor(table) for table in SYNCED_TABLES}

    if last_sync_time:
        try:
            last_sync = int(last_sync_time)
            age_seconds = int(datetime.now().timestamp()) - last_sync

            if age_seconds < 300:  # 5 minutes
                staleness = "fresh"
            elif age_seconds < 3600:  # 1 hour
                staleness = "slightly_stale"
            else:
                staleness = "stale"
            last_sync_formatted = datetime.fromtimestamp(last_sync).isoformat()
        except (ValueError, TypeError):
            staleness = "unknown"
            last_sync_formatted = None
    else:
        staleness = "never_synced"
        last_sync_formatted = None

    return {
        "last_sync_time": last_sync_formatted,
        "cursors": cursors,
        "cache_stats": cache_stats,
        "staleness": staleness,
    }
