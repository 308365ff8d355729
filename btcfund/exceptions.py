"""Errors raised by the fund ledger."""
from __future__ import annotations


class FundError(Exception):
    """Base class for fund ledger errors."""


class ValidationError(FundError, ValueError):
    """Caller supplied data that violates a precondition."""


class MemberNotFoundError(FundError, LookupError):
    def __init__(self, member_id: int) -> None:
        super().__init__(f"Member {member_id} not found")
        self.member_id = member_id


class StorageError(FundError, OSError):
    """The primary fund store could not be written."""
