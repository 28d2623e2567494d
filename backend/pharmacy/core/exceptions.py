"""
Typed failures for the record store, the wallet ledger and the workflows.

Every failure the calling layer has to tell apart gets its own class:
a pharmacist sees "insufficient stock", a patient "insufficient funds",
an admin "file unreadable". Nothing here is a generic failure.

BusinessError builds these exceptions and logs them at the right level,
so call sites read `raise BusinessError.insufficient_funds(...)`.
"""
import logging
from decimal import Decimal

logger = logging.getLogger(__name__)


class PharmacyError(Exception):
    """Base class for all domain failures."""


class ParseFailure(PharmacyError):
    """A stored line cannot be decoded (too few fields, bad literal)."""


class ReferenceFailure(PharmacyError):
    """A line item references a medicine id missing from the catalog."""


class StorageError(PharmacyError):
    """File read/write failed. Aborts the load or save that raised it."""


class FormatVersionError(StorageError):
    """File was written by a newer record format than this build reads."""


class LedgerIntegrityError(PharmacyError):
    """Persisted wallet balance disagrees with its transaction replay."""


class InvalidAmount(PharmacyError):
    """Money amount is zero, negative or not a number."""


class InvalidQuantity(PharmacyError):
    """Item quantity is zero/negative, or a line-item list is empty."""


class InsufficientFunds(PharmacyError):
    """Withdraw or pay beyond the wallet balance."""


class InsufficientStock(PharmacyError):
    """Requested quantity exceeds stock on hand."""


class InvalidTransition(PharmacyError):
    """Workflow operation not allowed from the current state."""


class PrescriptionExpired(PharmacyError):
    """Prescription is past its expiry date."""


class CardDeclined(PharmacyError):
    """Card number failed format validation."""


class AccessDenied(PharmacyError):
    """Actor is not allowed to act on this record."""


class AuthenticationFailed(PharmacyError):
    """Wrong username or password. Same message for both."""


class AccountLocked(PharmacyError):
    """Too many failed logins; account is locked for the window."""


class BusinessError:
    """Factories for domain exceptions with consistent log lines."""

    @staticmethod
    def parse_failure(detail: str, line_number: int | None = None) -> ParseFailure:
        """
        Stored line could not be decoded.

        Logged at WARNING: the store skips the line and keeps loading.
        """
        where = f" (line {line_number})" if line_number is not None else ""
        logger.warning(f"Parse failure{where}: {detail}")
        return ParseFailure(detail)

    @staticmethod
    def reference_failure(kind: str, missing_id: int, owner: str = "") -> ReferenceFailure:
        """Line item points at a medicine that is not in the catalog."""
        logger.warning(f"Dropping {kind} line item{' of ' + owner if owner else ''}: medicine #{missing_id} not in catalog")
        return ReferenceFailure(f"Medicine #{missing_id} not found")

    @staticmethod
    def storage_error(path, original_error: Exception) -> StorageError:
        """
        File could not be read or written.

        Logged at ERROR with the traceback. Never swallowed by the store.
        """
        logger.error(
            f"Storage error on {path}: {type(original_error).__name__}: {original_error}",
            exc_info=True,
        )
        return StorageError(f"Cannot access {path}: {original_error}")

    @staticmethod
    def format_version(path, found: int, supported: int) -> FormatVersionError:
        logger.error(f"{path} uses record format {found}; this build reads up to {supported}")
        return FormatVersionError(f"Unsupported record format {found} in {path}")

    @staticmethod
    def ledger_integrity(patient_id: int, detail: str) -> LedgerIntegrityError:
        """
        Wallet ledger and stored balance disagree.

        Reported, never patched: no adjustment transaction is created.
        """
        logger.error(f"Ledger integrity error for patient #{patient_id}: {detail}")
        return LedgerIntegrityError(f"Patient #{patient_id}: {detail}")

    @staticmethod
    def invalid_amount(amount) -> InvalidAmount:
        logger.info(f"Rejected amount: {amount}")
        return InvalidAmount(f"Amount must be greater than zero (got {amount})")

    @staticmethod
    def invalid_quantity(detail: str) -> InvalidQuantity:
        logger.info(f"Rejected quantity: {detail}")
        return InvalidQuantity(detail)

    @staticmethod
    def insufficient_funds(balance: Decimal, amount: Decimal) -> InsufficientFunds:
        logger.info(f"Insufficient funds: balance {balance:.2f}, requested {amount:.2f}")
        return InsufficientFunds(f"Insufficient funds: balance {balance:.2f}, requested {amount:.2f}")

    @staticmethod
    def insufficient_stock(medicine_name: str, available: int, requested: int) -> InsufficientStock:
        logger.info(f"Insufficient stock for {medicine_name}: {available} on hand, {requested} requested")
        return InsufficientStock(
            f"Insufficient stock for {medicine_name}: {available} on hand, {requested} requested"
        )

    @staticmethod
    def invalid_transition(kind: str, record_id: int, current, action: str) -> InvalidTransition:
        """
        Workflow operation attempted from a state that does not permit it.

        Example:
            raise BusinessError.invalid_transition("order", 7, order.status, "pay")
        """
        state = getattr(current, "value", current)
        logger.warning(f"Invalid transition: cannot {action} {kind} #{record_id} in state {state}")
        return InvalidTransition(f"Cannot {action} {kind} #{record_id} while {state}")

    @staticmethod
    def prescription_expired(prescription_id: int, expiry_date) -> PrescriptionExpired:
        logger.info(f"Prescription #{prescription_id} expired on {expiry_date}")
        return PrescriptionExpired(f"Prescription #{prescription_id} expired on {expiry_date}")

    @staticmethod
    def card_declined(reason: str) -> CardDeclined:
        # Never log the card number itself
        logger.info(f"Card declined: {reason}")
        return CardDeclined(reason)

    @staticmethod
    def access_denied(reason: str) -> AccessDenied:
        logger.warning(f"Access denied: {reason}")
        return AccessDenied(reason)

    @staticmethod
    def authentication_failed(reason: str = "") -> AuthenticationFailed:
        """
        Generic failure for wrong password and unknown user alike.

        The reason is logged, the message returned to the user is not.
        """
        logger.warning(f"Authentication failed: {reason}")
        return AuthenticationFailed("Invalid username or password")

    @staticmethod
    def account_locked(username: str, minutes_left: int) -> AccountLocked:
        logger.warning(f"Login attempt on locked account: {username}")
        return AccountLocked(f"Account locked. Try again in {minutes_left} minute(s).")
