"""
Order workflow.

    PENDING --pay_from_wallet / pay_with_card--> PAID --complete--> COMPLETED
    PENDING --cancel--> CANCELLED

Stock is reserved the moment a line item is added and released on cancel.
Every operation checks its preconditions before touching anything, so a
rejected call (InvalidTransition, InsufficientStock, InsufficientFunds,
CardDeclined) leaves order, stock and wallet exactly as they were.
Persisting is the caller's job: DataSession.commit("orders", ...).
"""
import logging
import re
from decimal import Decimal
from typing import List, Optional

from pharmacy.core.audit import AuditLog
from pharmacy.core.exceptions import BusinessError
from pharmacy.models.medicine import Medicine
from pharmacy.models.order import DeliveryMethod, Order, OrderItem, OrderStatus, PaymentMethod
from pharmacy.models.user import Patient
from pharmacy.models.wallet import Transaction
from pharmacy.services import inventory_service, ledger_service

logger = logging.getLogger(__name__)

_CARD_SEPARATORS = re.compile(r"[\s-]")
_CARD_DIGITS = re.compile(r"^\d{13,19}$")


def next_order_id(orders: List[Order]) -> int:
    """Unique across the whole collection and never reused while the max survives."""
    return max((o.id for o in orders), default=0) + 1


def _require_status(order: Order, expected: OrderStatus, action: str) -> None:
    if order.status != expected:
        raise BusinessError.invalid_transition("order", order.id, order.status, action)


def _require_items(order: Order, action: str) -> None:
    if not order.items:
        raise BusinessError.invalid_transition("order", order.id, "EMPTY", action)


def _mark_paid(order: Order, method: PaymentMethod) -> None:
    previous = order.status
    order.status = OrderStatus.PAID
    order.payment_method = method
    order.paid = True
    AuditLog.log_order_transition(order.id, previous.value, order.status.value,
                                  changes={"payment_method": method.value, "total": f"{order.total:.2f}"})


def create_order(
    orders: List[Order],
    patient_id: int,
    patient: Optional[Patient] = None,
    delivery_method: Optional[DeliveryMethod] = None,
) -> Order:
    """
    Start an empty PENDING order and add it to the collection.

    Contact details are copied from the patient when given, so the order
    keeps them even if the patient record changes later.
    """
    order = Order(
        id=next_order_id(orders),
        patient_id=patient_id,
        patient_name=patient.name if patient else "",
        patient_phone=patient.phone if patient else "",
        patient_address=patient.address if patient else "",
        delivery_method=delivery_method,
    )
    orders.append(order)
    logger.info(f"Created order #{order.id} for patient #{patient_id}")
    AuditLog.log_order_transition(order.id, "NEW", order.status.value)
    return order


def add_line_item(order: Order, medicine: Medicine, quantity: int) -> OrderItem:
    """
    Reserve stock and add it to the order at today's price.

    DETERMINISTIC BILLING: total = sum(unit_price x quantity), where each
    unit price is frozen when its item is added.

    Raises:
        InvalidTransition: order is not PENDING
        InvalidQuantity: quantity <= 0
        InsufficientStock: medicine.quantity < quantity (catalog object)
    """
    _require_status(order, OrderStatus.PENDING, "add items to")
    inventory_service.reserve_stock(medicine, quantity)

    unit_price = medicine.price
    item = next(
        (i for i in order.items if i.medicine_id == medicine.id and i.unit_price == unit_price),
        None,
    )
    if item is not None:
        item.quantity += quantity
    else:
        item = OrderItem(medicine=medicine, quantity=quantity, unit_price=unit_price)
        order.items.append(item)

    order.total = order.calculate_total()
    logger.info(
        f"Order #{order.id}: +{quantity} x {medicine.name} @ {unit_price:.2f}, total={order.total:.2f}"
    )
    return item


def pay_from_wallet(order: Order, patient: Patient) -> Optional[Transaction]:
    """
    Settle a PENDING order from the patient's wallet.

    A 0.00 order (free medicines only) is marked paid without a ledger
    entry and returns None.

    Raises InsufficientFunds (from the ledger) with order and wallet unchanged.
    """
    _require_status(order, OrderStatus.PENDING, "pay")
    if order.patient_id != patient.id:
        raise BusinessError.access_denied(f"order #{order.id} does not belong to patient #{patient.id}")
    _require_items(order, "pay")

    if order.total == 0:
        _mark_paid(order, PaymentMethod.WALLET)
        return None
    txn = ledger_service.pay(
        patient.wallet, order.total, order.id, f"Payment for Order #{order.id}", patient_id=patient.id
    )
    _mark_paid(order, PaymentMethod.WALLET)
    return txn


def validate_card_number(card_number: str) -> str:
    """
    Format check only: 13-19 digits (spaces/dashes ignored) passing Luhn.

    Returns:
        the digits
    Raises:
        CardDeclined
    """
    digits = _CARD_SEPARATORS.sub("", card_number or "")
    if not _CARD_DIGITS.match(digits):
        raise BusinessError.card_declined("Card number must be 13 to 19 digits")

    checksum = 0
    for position, ch in enumerate(reversed(digits)):
        d = int(ch)
        if position % 2 == 1:
            d *= 2
            if d > 9:
                d -= 9
        checksum += d
    if checksum % 10 != 0:
        raise BusinessError.card_declined("Card number failed checksum")
    return digits


def mask_card_number(card_number: str) -> str:
    digits = _CARD_SEPARATORS.sub("", card_number or "")
    return "**** **** **** " + digits[-4:]


def pay_with_card(order: Order, card_number: str) -> str:
    """
    Settle a PENDING order by card. No gateway: the number is format-checked.

    Returns:
        masked card number for receipts
    """
    _require_status(order, OrderStatus.PENDING, "pay")
    _require_items(order, "pay")
    digits = validate_card_number(card_number)

    _mark_paid(order, PaymentMethod.CARD)
    masked = mask_card_number(digits)
    logger.info(f"Order #{order.id} paid by card {masked}")
    return masked


def cancel(order: Order) -> Order:
    """PENDING only. Every reserved unit goes back to its medicine."""
    _require_status(order, OrderStatus.PENDING, "cancel")
    for item in order.items:
        inventory_service.release_stock(item.medicine, item.quantity)

    order.status = OrderStatus.CANCELLED
    AuditLog.log_order_transition(order.id, OrderStatus.PENDING.value, order.status.value,
                                  changes={"released_units": order.total_quantity})
    return order


def complete(order: Order) -> Order:
    """PAID only. Fulfilment done."""
    _require_status(order, OrderStatus.PAID, "complete")
    order.status = OrderStatus.COMPLETED
    AuditLog.log_order_transition(order.id, OrderStatus.PAID.value, order.status.value)
    return order


def orders_for_patient(orders: List[Order], patient_id: int) -> List[Order]:
    return [o for o in orders if o.patient_id == patient_id]


def outstanding_total(orders: List[Order], patient_id: int) -> Decimal:
    """Sum of the patient's PENDING orders."""
    return sum(
        (o.total for o in orders if o.patient_id == patient_id and o.status == OrderStatus.PENDING),
        Decimal("0.00"),
    )
