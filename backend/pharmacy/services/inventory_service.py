"""Stock on hand. Used by order reservation, prescription fills and restocking."""
import logging
from typing import Iterable, Optional

from pharmacy.core.audit import AuditLog
from pharmacy.core.exceptions import BusinessError
from pharmacy.models.medicine import Medicine

logger = logging.getLogger(__name__)


def find_medicine(catalog: Iterable[Medicine], medicine_id: int) -> Optional[Medicine]:
    return next((m for m in catalog if m.id == medicine_id), None)


def _require_positive(quantity: int) -> None:
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
        raise BusinessError.invalid_quantity(f"Quantity must be a positive whole number (got {quantity!r})")


def has_stock(medicine: Medicine, quantity: int) -> bool:
    return medicine.quantity >= quantity


def reserve_stock(medicine: Medicine, quantity: int, reason: str = "reserve") -> Medicine:
    """Take units off the shelf. Raises InsufficientStock and changes nothing if short."""
    _require_positive(quantity)
    if not has_stock(medicine, quantity):
        raise BusinessError.insufficient_stock(medicine.name, medicine.quantity, quantity)
    medicine.quantity -= quantity
    AuditLog.log_stock_change(medicine.id, -quantity, medicine.quantity, reason)
    return medicine


def release_stock(medicine: Medicine, quantity: int) -> Medicine:
    """Put reserved units back (order cancelled)."""
    _require_positive(quantity)
    medicine.quantity += quantity
    AuditLog.log_stock_change(medicine.id, quantity, medicine.quantity, "release")
    return medicine


def restock(medicine: Medicine, quantity: int) -> Medicine:
    """Pharmacist receives a delivery."""
    _require_positive(quantity)
    medicine.quantity += quantity
    logger.info(f"Restocked {medicine.name}: +{quantity} -> {medicine.quantity}")
    AuditLog.log_stock_change(medicine.id, quantity, medicine.quantity, "restock")
    return medicine


def set_stock(medicine: Medicine, quantity: int) -> Medicine:
    """Absolute correction after a stock count. Zero is allowed."""
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 0:
        raise BusinessError.invalid_quantity(f"Stock cannot be negative (got {quantity!r})")
    delta = quantity - medicine.quantity
    medicine.quantity = quantity
    AuditLog.log_stock_change(medicine.id, delta, medicine.quantity, "adjust")
    return medicine
