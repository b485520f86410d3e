"""Posting package: the rules that turn user actions into ledger entries."""

from ledger.posting.descriptions import DescriptionFormatter
from ledger.posting.engine import PostingEngine

__all__ = ["DescriptionFormatter", "PostingEngine"]
