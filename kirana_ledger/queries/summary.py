"""
Ledger Summaries

Deterministic numbers derived from the engine's unified view: the balance
card totals and the daily income/expense chart. Deleted records are
already gone from the view, so nothing here consults the overlay.
"""

from datetime import date
from decimal import Decimal
from typing import Iterable

from kirana_ledger.models.ledger import DailyBucket, LedgerTotals
from kirana_ledger.models.transaction import Transaction


def compute_totals(transactions: Iterable[Transaction]) -> LedgerTotals:
    """Sum income and expense over the view."""
    income = Decimal("0")
    expense = Decimal("0")
    for t in transactions:
        income += t.income
        expense += t.expense
    return LedgerTotals(income=income, expense=expense)


def daily_buckets(
    transactions: Iterable[Transaction],
    days: int = 7,
) -> list[DailyBucket]:
    """
    Group the view by date.

    Only dates that have records get a bucket. Buckets are returned in
    ascending date order, keeping the most recent `days` of them.
    """
    if days <= 0:
        return []

    grouped: dict[date, DailyBucket] = {}
    for t in transactions:
        bucket = grouped.get(t.date)
        if bucket is None:
            bucket = DailyBucket(date=t.date)
            grouped[t.date] = bucket
        bucket.income += t.income
        bucket.expense += t.expense

    ordered = sorted(grouped.values(), key=lambda b: b.date)
    return ordered[-days:]
