"""Summary queries over the ledger view."""

from kirana_ledger.queries.summary import compute_totals, daily_buckets

__all__ = ["compute_totals", "daily_buckets"]
