"""Account registry package."""

from ledger.accounts.registry import AccountRegistry

__all__ = ["AccountRegistry"]
