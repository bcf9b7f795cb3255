"""
Ledger enumerations.
"""

import enum


class LedgerDirection(str, enum.Enum):
    """Which side of the ledger a record lives on."""
    PAYABLE = "PAYABLE"  # We owe a supplier
    RECEIVABLE = "RECEIVABLE"  # A customer owes us


class AccountStatus(str, enum.Enum):
    """Ledger record status enumeration."""
    PENDING = "PENDING"  # Created, nothing paid yet
    PARTIALLY_PAID = "PARTIALLY_PAID"  # Some payment applied, balance remains
    PAID = "PAID"  # Fully settled (terminal)
    OVERDUE = "OVERDUE"  # Past due date, set by the sweeper
    CANCELLED = "CANCELLED"  # Administratively cancelled (terminal)


class PaymentMethod(str, enum.Enum):
    """Payment method enumeration."""
    CASH = "CASH"
    BANK_SLIP = "BANK_SLIP"
    PIX = "PIX"
    CREDIT_CARD = "CREDIT_CARD"
    DEBIT_CARD = "DEBIT_CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    CHECK = "CHECK"
    OTHER = "OTHER"
