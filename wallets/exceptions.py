from rest_framework import status

from tradeguru.exceptions import DomainError


class LedgerError(DomainError):
    code = "ledger_error"


class InsufficientFunds(LedgerError):
    """Raised when a DEBIT exceeds the wallet's current balance."""

    code = "insufficient_funds"
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    action = "recharge"
    default_message = "Insufficient wallet balance. Please recharge your wallet."


class DuplicateCharge(LedgerError):
    """Raised when a reference is debited again with a different amount or wallet."""

    code = "duplicate_charge"
    status_code = status.HTTP_409_CONFLICT
    default_message = "This reference has already been charged."
