# File: parkbook/domain/errors.py
"""
Error taxonomy for the booking ledger

All ledger failures derive from LedgerError so callers can surface them
as user-visible messages instead of crashing.
"""

from typing import Any, Dict, List, Optional


class LedgerError(Exception):
    """Base exception for ledger errors"""
    pass


class ValidationError(LedgerError, ValueError):
    """Malformed input: bad ranges, missing required fields, end <= start"""

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.errors = errors or []


class NotFoundError(LedgerError):
    """Unknown location, slot or booking id"""
    pass


class SlotUnavailableError(LedgerError):
    """Booking attempted on a slot that is not available"""
    pass


class IllegalStateError(LedgerError):
    """Operation not allowed in the entity's current state"""
    pass


class AuthorizationError(LedgerError):
    """Acting user does not own the booking"""
    pass


class PaymentError(LedgerError):
    """Payment was not approved"""
    pass
