"""Wallet ledger. Used by order_service for payments and by the patient loader.

The balance is a cache of the transaction log: every change goes through
_append(), which writes the transaction and moves the balance in one step.
Failed operations raise before anything is touched.
"""
import logging
import re
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Tuple

from pharmacy.core.audit import AuditLog
from pharmacy.core.exceptions import BusinessError, LedgerIntegrityError
from pharmacy.models.medicine import CENT
from pharmacy.models.wallet import Transaction, TransactionType, Wallet

logger = logging.getLogger(__name__)

_ORDER_REF = re.compile(r"#(\d+)")


def _positive_amount(amount: Decimal | float | int | str) -> Decimal:
    try:
        value = Decimal(str(amount)).quantize(CENT)
    except InvalidOperation:
        raise BusinessError.invalid_amount(amount)
    if not value.is_finite() or value <= 0:
        raise BusinessError.invalid_amount(amount)
    return value


def next_transaction_id(wallet: Wallet) -> int:
    return wallet.transactions[-1].id + 1 if wallet.transactions else 1


def _append(
    wallet: Wallet,
    amount: Decimal,
    txn_type: TransactionType,
    description: str,
    order_id: Optional[int] = None,
    patient_id: Optional[int] = None,
) -> Transaction:
    txn = Transaction(
        id=next_transaction_id(wallet),
        amount=amount,
        type=txn_type,
        description=description,
        order_id=order_id,
    )
    wallet.transactions.append(txn)
    wallet.balance = (wallet.balance + txn.signed_amount).quantize(CENT)

    AuditLog.log_wallet_transaction(patient_id, txn.id, txn_type.value, amount, wallet.balance, order_id=order_id)
    return txn


def deposit(wallet: Wallet, amount, description: str = "Deposit", patient_id: Optional[int] = None) -> Transaction:
    """Add funds. Amount must be > 0."""
    value = _positive_amount(amount)
    return _append(wallet, value, TransactionType.DEPOSIT, description, patient_id=patient_id)


def withdraw(wallet: Wallet, amount, description: str = "Withdrawal", patient_id: Optional[int] = None) -> Transaction:
    """Take funds out. Raises InsufficientFunds if amount > balance."""
    value = _positive_amount(amount)
    if value > wallet.balance:
        raise BusinessError.insufficient_funds(wallet.balance, value)
    return _append(wallet, value, TransactionType.WITHDRAWAL, description, patient_id=patient_id)


def pay(
    wallet: Wallet,
    amount,
    order_id: int,
    description: str | None = None,
    patient_id: Optional[int] = None,
) -> Transaction:
    """Settle an order from the wallet. Same preconditions as withdraw()."""
    value = _positive_amount(amount)
    if value > wallet.balance:
        raise BusinessError.insufficient_funds(wallet.balance, value)
    return _append(
        wallet,
        value,
        TransactionType.PAYMENT,
        description or f"Payment for Order #{order_id}",
        order_id=order_id,
        patient_id=patient_id,
    )


# ==============================================================================
# REPLAY
# ==============================================================================

def replay_balance(transactions: List[Transaction]) -> Decimal:
    """Balance produced by the log, summed in stored order from zero."""
    return sum((t.signed_amount for t in transactions), Decimal("0.00")).quantize(CENT)


def restore_wallet(
    transactions: List[Transaction],
    persisted_balance: Optional[Decimal],
    patient_id: int,
) -> Tuple[Wallet, List[LedgerIntegrityError]]:
    """
    Rebuild a wallet from its stored log.

    The replayed balance is authoritative. Problems are returned, not fixed:
    - running balance dips below zero at some transaction
    - transaction ids are not strictly increasing
    - the stored balance differs from the replay

    Returns:
        (wallet, integrity_errors)
    """
    errors = []
    running = Decimal("0.00")
    last_id = 0
    for txn in transactions:
        if txn.id <= last_id:
            errors.append(BusinessError.ledger_integrity(
                patient_id, f"transaction #{txn.id} out of order after #{last_id}"
            ))
        last_id = max(last_id, txn.id)
        running += txn.signed_amount
        if running < 0:
            errors.append(BusinessError.ledger_integrity(
                patient_id, f"transaction #{txn.id} overdraws the wallet to {running:.2f}"
            ))

    replayed = running.quantize(CENT)
    # Old patient lines have no wallet fields at all; nothing to compare
    if persisted_balance is not None and persisted_balance != replayed:
        errors.append(BusinessError.ledger_integrity(
            patient_id, f"stored balance {persisted_balance:.2f} != ledger replay {replayed:.2f}"
        ))

    for error in errors:
        AuditLog.log_integrity_error(patient_id, persisted_balance, replayed, str(error))

    return Wallet(balance=replayed, transactions=list(transactions)), errors


def verify_wallet(wallet: Wallet, patient_id: int = 0) -> None:
    """Raise LedgerIntegrityError if the balance differs from the replay."""
    replayed = replay_balance(wallet.transactions)
    if wallet.balance != replayed:
        raise BusinessError.ledger_integrity(
            patient_id, f"balance {wallet.balance:.2f} != ledger replay {replayed:.2f}"
        )


def order_id_from_description(description: str) -> Optional[int]:
    """Recover the order id from older PAYMENT rows ("Payment for Order #12")."""
    match = _ORDER_REF.search(description or "")
    return int(match.group(1)) if match else None
