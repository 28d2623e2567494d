"""
Prescription workflow.

    CREATED --send--> SENT_TO_PHARMACY --fill--> FILLED --convert_to_order--> CONVERTED_TO_ORDER

Filling takes stock out of the pharmacy's inventory, all items or none.
Conversion produces a PENDING order for the patient to pay through
order_service; it does not touch stock again.
"""
import logging
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from pharmacy.core.audit import AuditLog
from pharmacy.core.config import settings
from pharmacy.core.exceptions import BusinessError
from pharmacy.models.medicine import Medicine
from pharmacy.models.order import Order, OrderItem
from pharmacy.models.pharmacy import Pharmacy
from pharmacy.models.prescription import Prescription, PrescriptionItem, PrescriptionStatus
from pharmacy.models.user import Patient, Pharmacist
from pharmacy.services import inventory_service

logger = logging.getLogger(__name__)


def next_prescription_id(prescriptions: List[Prescription]) -> int:
    return max((p.id for p in prescriptions), default=0) + 1


def _require_status(prescription: Prescription, expected: PrescriptionStatus, action: str) -> None:
    if prescription.status != expected:
        raise BusinessError.invalid_transition("prescription", prescription.id, prescription.status, action)


def _transition(prescription: Prescription, to_status: PrescriptionStatus, actor_id: Optional[int] = None,
                changes: Optional[dict] = None) -> None:
    previous = prescription.status
    prescription.status = to_status
    AuditLog.log_prescription_transition(prescription.id, previous.value, to_status.value,
                                         actor_id=actor_id, changes=changes)


def create_prescription(
    prescriptions: List[Prescription],
    doctor_id: int,
    patient_id: int,
    instructions: str,
    items: Iterable[Tuple[Medicine, int]],
    diagnosis: str = "",
    today: Optional[date] = None,
) -> Prescription:
    """
    Doctor writes a prescription.

    Args:
        items: (medicine, quantity) pairs, at least one
        today: Issue date (defaults to date.today())

    Raises:
        InvalidQuantity: no items, or a quantity <= 0
    """
    pairs = list(items)
    if not pairs:
        raise BusinessError.invalid_quantity("A prescription needs at least one medicine")
    for medicine, quantity in pairs:
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            raise BusinessError.invalid_quantity(f"Quantity for {medicine.name} must be positive (got {quantity!r})")

    issue_date = today or date.today()
    prescription = Prescription(
        id=next_prescription_id(prescriptions),
        patient_id=patient_id,
        doctor_id=doctor_id,
        issue_date=issue_date,
        expiry_date=issue_date + timedelta(days=settings.PRESCRIPTION_VALIDITY_DAYS),
        items=[PrescriptionItem(medicine=m, quantity=q) for m, q in pairs],
        diagnosis=diagnosis,
        instructions=instructions,
    )
    prescriptions.append(prescription)

    logger.info(f"Doctor #{doctor_id} created prescription #{prescription.id} for patient #{patient_id}")
    AuditLog.log_prescription_transition(prescription.id, "NEW", prescription.status.value, actor_id=doctor_id)
    return prescription


def send(prescription: Prescription, pharmacy: Pharmacy) -> Prescription:
    """Route a CREATED prescription to a pharmacy's inbox."""
    _require_status(prescription, PrescriptionStatus.CREATED, "send")
    prescription.pharmacy_id = pharmacy.id
    if prescription.id not in pharmacy.prescription_ids:
        pharmacy.prescription_ids.append(prescription.id)
    _transition(prescription, PrescriptionStatus.SENT_TO_PHARMACY, changes={"pharmacy_id": pharmacy.id})
    return prescription


def fill(prescription: Prescription, pharmacist: Pharmacist, pharmacy: Pharmacy) -> Prescription:
    """
    Dispense every item from the pharmacy's inventory.

    ALL-OR-NOTHING: every item is checked before any stock moves. A short
    or missing medicine raises InsufficientStock with nothing changed.
    Lines naming the same medicine are checked against their combined
    quantity.

    Raises:
        InvalidTransition: not SENT_TO_PHARMACY
        AccessDenied: wrong pharmacy, or pharmacist works elsewhere
        InsufficientStock
    """
    _require_status(prescription, PrescriptionStatus.SENT_TO_PHARMACY, "fill")
    if prescription.pharmacy_id != pharmacy.id:
        raise BusinessError.access_denied(
            f"prescription #{prescription.id} was sent to pharmacy #{prescription.pharmacy_id}, not #{pharmacy.id}"
        )
    if pharmacist.pharmacy_id is not None and pharmacist.pharmacy_id != pharmacy.id:
        raise BusinessError.access_denied(
            f"pharmacist #{pharmacist.id} works at pharmacy #{pharmacist.pharmacy_id}, not #{pharmacy.id}"
        )

    # Same medicine on several lines draws on one stock count
    needed: Dict[int, int] = {}
    for item in prescription.items:
        needed[item.medicine_id] = needed.get(item.medicine_id, 0) + item.quantity

    stock = []
    for item in prescription.items:
        if item.medicine_id not in needed:
            continue
        quantity = needed.pop(item.medicine_id)
        medicine = pharmacy.find_medicine(item.medicine_id)
        if medicine is None:
            raise BusinessError.insufficient_stock(item.medicine.name, 0, quantity)
        if not inventory_service.has_stock(medicine, quantity):
            raise BusinessError.insufficient_stock(medicine.name, medicine.quantity, quantity)
        stock.append((medicine, quantity))

    for medicine, quantity in stock:
        inventory_service.reserve_stock(medicine, quantity, reason="fill")

    prescription.pharmacist_id = pharmacist.id
    _transition(prescription, PrescriptionStatus.FILLED, actor_id=pharmacist.id)
    logger.info(f"Pharmacist #{pharmacist.id} filled prescription #{prescription.id} at pharmacy #{pharmacy.id}")
    return prescription


def convert_to_order(
    prescription: Prescription,
    patient: Patient,
    new_order_id: int,
    today: Optional[date] = None,
    orders: Optional[List[Order]] = None,
) -> Order:
    """
    Turn a FILLED prescription into a PENDING order at current prices.

    Take new_order_id from order_service.next_order_id(orders). When the
    order collection is passed, an id already in it is refused and the new
    order is appended; otherwise the caller stores the returned order.

    Raises:
        InvalidTransition: not FILLED, or new_order_id already used in orders
        PrescriptionExpired: expiry_date < today
        AccessDenied: patient is not the prescription's patient
    """
    _require_status(prescription, PrescriptionStatus.FILLED, "convert")
    today = today or date.today()
    if prescription.is_expired(today):
        raise BusinessError.prescription_expired(prescription.id, prescription.expiry_date)
    if prescription.patient_id != patient.id:
        raise BusinessError.access_denied(
            f"prescription #{prescription.id} does not belong to patient #{patient.id}"
        )
    if orders is not None and any(o.id == new_order_id for o in orders):
        raise BusinessError.invalid_transition("order", new_order_id, "EXISTS", "create")

    order = Order(
        id=new_order_id,
        patient_id=patient.id,
        items=[
            OrderItem(medicine=item.medicine, quantity=item.quantity, unit_price=item.medicine.price)
            for item in prescription.items
        ],
        patient_name=patient.name,
        patient_phone=patient.phone,
        patient_address=patient.address,
        prescription_id=prescription.id,
    )
    order.total = order.calculate_total()
    if orders is not None:
        orders.append(order)

    prescription.order_id = order.id
    _transition(prescription, PrescriptionStatus.CONVERTED_TO_ORDER, actor_id=patient.id,
                changes={"order_id": order.id})
    AuditLog.log_order_transition(order.id, "NEW", order.status.value,
                                  changes={"prescription_id": prescription.id, "total": f"{order.total:.2f}"})
    return order


def prescriptions_for_pharmacy(prescriptions: List[Prescription], pharmacy: Pharmacy) -> List[Prescription]:
    """The pharmacy inbox, resolved to prescription records."""
    wanted = set(pharmacy.prescription_ids)
    return [p for p in prescriptions if p.id in wanted]
