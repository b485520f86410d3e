"""Validation package."""

from ledger.validation.validator import PostingValidator

__all__ = ["PostingValidator"]
