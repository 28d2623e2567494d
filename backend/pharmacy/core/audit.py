"""
Audit logging for money, stock and workflow events.

Every balance change, stock change and state transition is written as one
JSON object to the "audit" logger, so a wallet or an order can be traced
after the fact independently of the data files.

LOGGING SENSITIVE DATA: passwords and full card numbers are never logged.
"""
import logging
import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Dict

# Separate logger for audit events (can be routed to its own file)
audit_logger = logging.getLogger("audit")


def _emit(log_entry: Dict[str, Any], level: int = logging.INFO) -> None:
    audit_logger.log(level, json.dumps(log_entry, default=str))


class AuditLog:
    """Central audit logging for money, stock and workflow events."""

    @staticmethod
    def log_wallet_transaction(
        patient_id: Optional[int],
        transaction_id: int,
        transaction_type: str,  # "DEPOSIT", "WITHDRAWAL", "PAYMENT"
        amount: Decimal,
        balance_after: Decimal,
        order_id: Optional[int] = None,
    ):
        """
        Log a ledger append.

        Usage:
            AuditLog.log_wallet_transaction(3, 12, "PAYMENT", Decimal("31.50"), Decimal("468.50"), order_id=1)
        """
        log_entry = {
            "timestamp": datetime.now().isoformat(timespec="seconds"),
            "event_type": f"wallet.{transaction_type.lower()}",
            "patient_id": patient_id,
            "transaction_id": transaction_id,
            "amount": f"{amount:.2f}",
            "balance_after": f"{balance_after:.2f}",
        }

        if order_id is not None:
            log_entry["order_id"] = order_id

        _emit(log_entry)

    @staticmethod
    def log_order_transition(
        order_id: int,
        from_status: str,
        to_status: str,
        changes: Optional[Dict[str, Any]] = None,
    ):
        """
        Log an order state change (PENDING -> PAID, PAID -> COMPLETED, ...).

        Usage:
            AuditLog.log_order_transition(7, "PENDING", "PAID", changes={"payment_method": "WALLET"})
        """
        log_entry = {
            "timestamp": datetime.now().isoformat(timespec="seconds"),
            "event_type": "order.transition",
            "order_id": order_id,
            "from": from_status,
            "to": to_status,
        }

        if changes:
            log_entry["changes"] = changes

        _emit(log_entry)

    @staticmethod
    def log_prescription_transition(
        prescription_id: int,
        from_status: str,
        to_status: str,
        actor_id: Optional[int] = None,
        changes: Optional[Dict[str, Any]] = None,
    ):
        log_entry = {
            "timestamp": datetime.now().isoformat(timespec="seconds"),
            "event_type": "prescription.transition",
            "prescription_id": prescription_id,
            "from": from_status,
            "to": to_status,
        }

        if actor_id is not None:
            log_entry["actor_id"] = actor_id
        if changes:
            log_entry["changes"] = changes

        _emit(log_entry)

    @staticmethod
    def log_stock_change(
        medicine_id: int,
        delta: int,
        quantity_after: int,
        reason: str,  # "reserve", "release", "restock", "adjust", "fill"
    ):
        log_entry = {
            "timestamp": datetime.now().isoformat(timespec="seconds"),
            "event_type": f"stock.{reason}",
            "medicine_id": medicine_id,
            "delta": delta,
            "quantity_after": quantity_after,
        }
        _emit(log_entry)

    @staticmethod
    def log_authentication(
        username: str,
        success: bool,
        reason: str = "",
    ):
        """
        Log login attempts. Never includes the password.

        Usage:
            AuditLog.log_authentication("dr.hassan", False, reason="Invalid password")
        """
        log_entry = {
            "timestamp": datetime.now().isoformat(timespec="seconds"),
            "event_type": "auth.login" if success else "auth.failed_login",
            "username": username,
            "success": success,
        }

        if reason and not success:
            log_entry["reason"] = reason

        _emit(log_entry, logging.INFO if success else logging.WARNING)

    @staticmethod
    def log_integrity_error(
        patient_id: int,
        persisted_balance: Optional[Decimal],
        replayed_balance: Decimal,
        detail: str,
    ):
        """
        Log a wallet whose stored balance and ledger disagree.

        SECURITY: a mismatch means the file was edited or a write was lost;
        it must be investigated, not auto-corrected.
        """
        log_entry = {
            "timestamp": datetime.now().isoformat(timespec="seconds"),
            "event_severity": "ERROR",
            "event_type": "wallet.integrity_error",
            "patient_id": patient_id,
            "persisted_balance": None if persisted_balance is None else f"{persisted_balance:.2f}",
            "replayed_balance": f"{replayed_balance:.2f}",
            "detail": detail,
        }
        _emit(log_entry, logging.ERROR)
