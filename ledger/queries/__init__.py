"""Read-side query package: entry listings and summaries."""

from ledger.queries.entries import EntryQueries
from ledger.queries.summary import SummaryAggregator

__all__ = ["EntryQueries", "SummaryAggregator"]
