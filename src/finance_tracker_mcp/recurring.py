"""Recurring-charge detection: memo normalization, grouping and cadence inference.

Everything here is a pure function of the transaction/category snapshot it is
given. Transactions are plain dicts as returned by `Database.get_transactions`:
``{"id", "account_id", "date", "memo", "expense", "income", "category_id",
"currency"}`` with ISO dates.
"""

import re
from datetime import date
from typing import Any

from .service_namer import KeywordServiceClassifier, ServiceClassifier
from .utils import EXPENSE, add_months, add_years, is_pure_expense, parse_date, tx_amount


MONTHLY = "monthly"
ANNUAL = "annual"
IRREGULAR = "irregular"

KEY_LENGTH = 10
MIN_KEY_LENGTH = 3
AMOUNT_TOLERANCE = 0.10

MONTHLY_GAP_DAYS = (25, 35)
ANNUAL_GAP_DAYS = (350, 380)

# Intermediaries that prefix the real merchant on card statements
PAYMENT_PROCESSOR_TAGS = (
    "mercadopago",
    "mercpago",
    "paypal",
    "stripe",
    "dlocal",
    "openpay",
    "conekta",
    "payu",
)

# Substrings in category/subcategory names that mark subscription-like spending
SUBSCRIPTION_CATEGORY_HINTS = ("suscrip", "subscri", "membres", "streaming")

_STRIP_RE = re.compile(r"[\d\W_]+")


def normalize_memo(memo: str | None) -> str:
    """Reduce a free-text memo to a short comparison key.

    "SPOTIFY*1234" and "Spotify 5678" both become "spotify".
    """
    if not memo:
        return ""
    key = _STRIP_RE.sub("", memo.lower())
    for tag in PAYMENT_PROCESSOR_TAGS:
        key = key.replace(tag, "")
    return key[:KEY_LENGTH]


def transactions_match(a: dict, b: dict) -> bool:
    """Decide whether two transactions look like charges of the same service."""
    key_a = normalize_memo(a.get("memo"))
    if len(key_a) > MIN_KEY_LENGTH and key_a == normalize_memo(b.get("memo")):
        return True

    amount_a = tx_amount(a)
    amount_b = tx_amount(b)
    larger = max(amount_a, amount_b)
    if larger <= 0:
        return False
    close_amounts = abs(amount_a - amount_b) <= AMOUNT_TOLERANCE * larger
    same_day = parse_date(a["date"]).day == parse_date(b["date"]).day
    return close_amounts and same_day


def group_transactions(transactions: list[dict]) -> list[list[dict]]:
    """Partition transactions into same-service groups in a single forward pass.

    Each transaction joins the group of the earliest preceding transaction it
    matches, or starts a new group. Assignments are never revisited, so the
    result depends on input order (callers pass date-ascending lists).
    """
    groups: list[list[dict]] = []
    group_of: list[int] = []

    for i, tx in enumerate(transactions):
        target = None
        for j in range(i):
            if transactions_match(tx, transactions[j]):
                target = group_of[j]
                break
        if target is None:
            target = len(groups)
            groups.append([])
        groups[target].append(tx)
        group_of.append(target)

    return groups


def payment_gaps(transactions: list[dict]) -> list[int]:
    """Day gaps between consecutive payments, in date order."""
    dates = sorted(parse_date(tx["date"]) for tx in transactions)
    return [(dates[i] - dates[i - 1]).days for i in range(1, len(dates))]


def classify_frequency(transactions: list[dict]) -> str:
    """Label a group's cadence as monthly, annual or irregular from its average gap."""
    gaps = payment_gaps(transactions)
    if not gaps:
        return IRREGULAR

    avg_gap = sum(gaps) / len(gaps)
    if MONTHLY_GAP_DAYS[0] <= avg_gap <= MONTHLY_GAP_DAYS[1]:
        return MONTHLY
    if ANNUAL_GAP_DAYS[0] <= avg_gap <= ANNUAL_GAP_DAYS[1]:
        return ANNUAL
    return IRREGULAR


def project_next_payment(last_payment: date, frequency: str) -> date:
    """Predict the next charge date; unknown cadences are assumed monthly."""
    if frequency == ANNUAL:
        return add_years(last_payment)
    return add_months(last_payment)


def monthly_equivalent(amount: float, frequency: str) -> float:
    """Spread a payment over months according to its cadence."""
    if frequency == ANNUAL:
        return amount / 12
    return amount


def is_recurring_category(category: dict) -> bool:
    """Check if a category holds subscription-like recurring charges."""
    if category.get("type") != EXPENSE:
        return False
    if (category.get("tracking_frequency") or "").lower() == "mensual":
        return True
    names = f"{category.get('category') or ''} {category.get('subcategory') or ''}".lower()
    return any(hint in names for hint in SUBSCRIPTION_CATEGORY_HINTS)


def eligible_transactions(
    transactions: list[dict],
    categories: list[dict],
    today: date,
    lookback_months: int = 12,
    category_id: str | None = None,
) -> list[dict]:
    """Select expense transactions in the lookback window and recurring categories.

    Args:
        transactions: Snapshot of transactions.
        categories: Snapshot of categories.
        today: End of the lookback window.
        lookback_months: Window length in calendar months.
        category_id: If given, use only this category instead of the
            recurring-category heuristic.

    Returns:
        Eligible transactions sorted by date ascending, then id.
    """
    if category_id is not None:
        category_ids = {category_id}
    else:
        category_ids = {c["id"] for c in categories if is_recurring_category(c)}

    start = add_months(today, -lookback_months)
    selected = [
        tx for tx in transactions
        if tx.get("category_id") in category_ids
        and is_pure_expense(tx)
        and start <= parse_date(tx["date"]) <= today
    ]
    selected.sort(key=lambda tx: (tx["date"], tx["id"]))
    return selected


def representative_memo(group: list[dict]) -> str:
    """Memo of the most recent payment in a group."""
    latest = max(group, key=lambda tx: (tx["date"], tx["id"]))
    return latest.get("memo") or ""


def build_service_group(
    group: list[dict],
    service_name: str,
    description: str,
) -> dict[str, Any]:
    """Assemble the view-model for one detected service."""
    ordered = sorted(group, key=lambda tx: (tx["date"], tx["id"]), reverse=True)
    frequency = classify_frequency(ordered)
    last = ordered[0]
    last_date = parse_date(last["date"])
    last_amount = tx_amount(last)
    total_paid = sum(tx_amount(tx) for tx in ordered)

    return {
        "service_name": service_name,
        "description": description,
        "frequency": frequency,
        "last_payment": {
            "date": last_date.isoformat(),
            "amount": round(last_amount, 2),
        },
        "next_payment": project_next_payment(last_date, frequency).isoformat(),
        "total_paid": round(total_paid, 2),
        "occurrences": len(ordered),
        "average_amount": round(total_paid / len(ordered), 2),
        "monthly_equivalent": round(monthly_equivalent(last_amount, frequency), 2),
        "currency": last.get("currency"),
        "transactions": [
            {
                "id": tx["id"],
                "date": tx["date"],
                "memo": tx.get("memo") or "",
                "amount": round(tx_amount(tx), 2),
            }
            for tx in ordered
        ],
    }


def assign_labels(
    groups: list[list[dict]],
    labels: list[dict[str, Any]],
    fallback: KeywordServiceClassifier | None = None,
) -> list[tuple[str, str]]:
    """Match classifier labels back to groups by shared memos.

    The label holding the group's most recent memo wins, then any label
    holding one of its memos, then the keyword classifier.
    """
    fallback = fallback or KeywordServiceClassifier()
    by_comment: dict[str, dict[str, Any]] = {}
    for label in labels:
        for comment in label["original_comments"]:
            by_comment.setdefault(comment, label)

    names = []
    for group in groups:
        memo = representative_memo(group)
        label = by_comment.get(memo)
        if label is None:
            for tx in group:
                label = by_comment.get(tx.get("memo") or "")
                if label is not None:
                    break
        if label is None:
            label = fallback.label_for(memo)
        names.append((label["service_name"], label["description"]))
    return names


async def detect_services(
    transactions: list[dict],
    categories: list[dict],
    today: date,
    classifier: ServiceClassifier | None = None,
    lookback_months: int = 12,
    category_id: str | None = None,
) -> list[dict[str, Any]]:
    """Run the whole pipeline: filter, group, name, classify and project.

    Args:
        transactions: Snapshot of transactions.
        categories: Snapshot of categories.
        today: End of the lookback window.
        classifier: Service naming strategy; keyword lookup when None.
        lookback_months: Window length in calendar months.
        category_id: Restrict detection to one category.

    Returns:
        Service group view-models ordered by next payment, then name.
    """
    eligible = eligible_transactions(
        transactions, categories, today,
        lookback_months=lookback_months,
        category_id=category_id,
    )
    if not eligible:
        return []

    groups = group_transactions(eligible)
    # Blank memos carry nothing to name; their groups get the keyword placeholder
    memos = [tx["memo"] for tx in eligible if (tx.get("memo") or "").strip()]

    classifier = classifier or KeywordServiceClassifier()
    labels = await classifier.classify_services(memos)
    names = assign_labels(groups, labels)

    services = [
        build_service_group(group, service_name, description)
        for group, (service_name, description) in zip(groups, names)
    ]
    services.sort(key=lambda s: (s["next_payment"], s["service_name"]))
    return services
