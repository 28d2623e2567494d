"""
One RecordCodec per entity type.

Field order per file (see codec.py for the escaping grammar):

    medicines      id|name|description|manufacturer|price|quantity|category|requiresPrescription
    patients       id|name|username|passwordHash|email|phone|address|walletBalance|[transactions]
    doctors        id|name|username|passwordHash|email|phone|specialization|licenseNumber
    pharmacists    id|name|username|passwordHash|email|phone|licenseNumber|qualification|pharmacyId
    admins         id|name|username|passwordHash|email|phone|position|department
    pharmacies     id|name|address|phone|email
    orders         id|patientId|orderDate|total|status|paymentMethod|paid|[items]|patientName|
                   patientPhone|patientAddress|deliveryMethod|prescriptionId
    prescriptions  id|patientId|doctorId|issueDate|[items]|diagnosis|instructions|status|
                   expiryDate|pharmacyId|pharmacistId|orderId

Fields past each type's minimum are optional on read so older files
still load (patients without a wallet, prescriptions without status).
"""
import logging
from datetime import timedelta
from typing import Dict, Generic, List, Optional, Sequence, TypeVar

from pydantic import ValidationError

from pharmacy.core.config import settings
from pharmacy.core.exceptions import BusinessError, LedgerIntegrityError, PharmacyError
from pharmacy.db.codec import (
    decode_list,
    encode_list,
    format_bool,
    format_date,
    format_money,
    format_optional_int,
    format_timestamp,
    join_fields,
    parse_bool,
    parse_date,
    parse_enum,
    parse_int,
    parse_money,
    parse_optional_enum,
    parse_optional_int,
    parse_timestamp,
    split_fields,
    unescape,
)
from pharmacy.models import (
    Admin,
    DeliveryMethod,
    Doctor,
    Medicine,
    Order,
    OrderItem,
    OrderStatus,
    Patient,
    PaymentMethod,
    Pharmacist,
    Pharmacy,
    Prescription,
    PrescriptionItem,
    PrescriptionStatus,
    Transaction,
    TransactionType,
)
from pharmacy.models.order import PAID_STATES
from pharmacy.services import ledger_service

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Fields:
    """Raw (still escaped) fields of one line, with typed accessors."""

    def __init__(self, raw: List[str]):
        self.raw = raw

    def __len__(self):
        return len(self.raw)

    def has(self, index: int) -> bool:
        return index < len(self.raw)

    def text(self, index: int, default: str = "") -> str:
        return unescape(self.raw[index]) if self.has(index) else default

    def as_int(self, index: int, name: str) -> int:
        return parse_int(self.text(index), name)

    def as_optional_int(self, index: int, name: str) -> Optional[int]:
        return parse_optional_int(self.text(index), name)


class RecordCodec(Generic[T]):
    """
    Encode one record to one line and back.

    Subclasses supply `kind`, `min_fields`, `to_fields` and `from_fields`.
    decode() raises ParseFailure for short lines, bad literals and
    records the model rejects; it never raises anything fatal.
    """
    kind: str = "record"
    min_fields: int = 1

    def encode(self, record: T) -> str:
        return join_fields(self.to_fields(record))

    def decode(self, line: str) -> T:
        fields = Fields(split_fields(line))
        if len(fields) < self.min_fields:
            raise BusinessError.parse_failure(
                f"{self.kind}: expected at least {self.min_fields} fields, got {len(fields)}"
            )
        try:
            return self.from_fields(fields)
        except ValidationError as e:
            raise BusinessError.parse_failure(f"{self.kind}: {e.error_count()} invalid field(s): {e}")

    def to_fields(self, record: T) -> Sequence:
        raise NotImplementedError

    def from_fields(self, fields: Fields) -> T:
        raise NotImplementedError


# ==============================================================================
# CATALOG AND REFERENCE ENTITIES
# ==============================================================================

class MedicineCodec(RecordCodec[Medicine]):
    kind = "medicine"
    min_fields = 8

    def to_fields(self, m: Medicine) -> Sequence:
        return [
            m.id, m.name, m.description, m.manufacturer,
            format_money(m.price), m.quantity, m.category,
            format_bool(m.requires_prescription),
        ]

    def from_fields(self, f: Fields) -> Medicine:
        return Medicine(
            id=f.as_int(0, "id"),
            name=f.text(1),
            description=f.text(2),
            manufacturer=f.text(3),
            price=parse_money(f.text(4), "price"),
            quantity=f.as_int(5, "quantity"),
            category=f.text(6),
            requires_prescription=parse_bool(f.text(7), "requiresPrescription"),
        )


class DoctorCodec(RecordCodec[Doctor]):
    kind = "doctor"
    min_fields = 8

    def to_fields(self, d: Doctor) -> Sequence:
        return [d.id, d.name, d.username, d.password_hash, d.email, d.phone,
                d.specialization, d.license_number]

    def from_fields(self, f: Fields) -> Doctor:
        return Doctor(
            id=f.as_int(0, "id"), name=f.text(1), username=f.text(2), password_hash=f.text(3),
            email=f.text(4), phone=f.text(5), specialization=f.text(6), license_number=f.text(7),
        )


class PharmacistCodec(RecordCodec[Pharmacist]):
    kind = "pharmacist"
    min_fields = 8

    def to_fields(self, p: Pharmacist) -> Sequence:
        return [p.id, p.name, p.username, p.password_hash, p.email, p.phone,
                p.license_number, p.qualification, format_optional_int(p.pharmacy_id)]

    def from_fields(self, f: Fields) -> Pharmacist:
        # Old 8-field lines have no qualification: pharmacyId sits at index 7
        if len(f) == 8:
            qualification, pharmacy_id = "Qualified Pharmacist", f.as_optional_int(7, "pharmacyId")
        else:
            qualification, pharmacy_id = f.text(7), f.as_optional_int(8, "pharmacyId")
        return Pharmacist(
            id=f.as_int(0, "id"), name=f.text(1), username=f.text(2), password_hash=f.text(3),
            email=f.text(4), phone=f.text(5), license_number=f.text(6),
            qualification=qualification, pharmacy_id=pharmacy_id,
        )


class AdminCodec(RecordCodec[Admin]):
    kind = "admin"
    min_fields = 8

    def to_fields(self, a: Admin) -> Sequence:
        return [a.id, a.name, a.username, a.password_hash, a.email, a.phone, a.position, a.department]

    def from_fields(self, f: Fields) -> Admin:
        return Admin(
            id=f.as_int(0, "id"), name=f.text(1), username=f.text(2), password_hash=f.text(3),
            email=f.text(4), phone=f.text(5), position=f.text(6), department=f.text(7),
        )


class PharmacyCodec(RecordCodec[Pharmacy]):
    kind = "pharmacy"
    min_fields = 5

    def to_fields(self, p: Pharmacy) -> Sequence:
        return [p.id, p.name, p.address, p.phone, p.email]

    def from_fields(self, f: Fields) -> Pharmacy:
        return Pharmacy(id=f.as_int(0, "id"), name=f.text(1), address=f.text(2), phone=f.text(3), email=f.text(4))


# ==============================================================================
# PATIENTS + WALLET LEDGER
# ==============================================================================

def _format_transaction(t: Transaction) -> list:
    return [t.id, format_money(t.amount), t.type.value, t.description,
            format_timestamp(t.timestamp), format_optional_int(t.order_id)]


def _parse_transaction(parts: List[str]) -> Transaction:
    if len(parts) < 5:
        raise BusinessError.parse_failure(f"transaction: expected 5 parts, got {len(parts)}")
    txn_type = parse_enum(TransactionType, parts[2])
    description = parts[3]
    order_id = parse_optional_int(parts[5], "orderId") if len(parts) > 5 else None
    if order_id is None and txn_type == TransactionType.PAYMENT:
        order_id = ledger_service.order_id_from_description(description)
    return Transaction(
        id=parse_int(parts[0], "transactionId"),
        amount=parse_money(parts[1], "transactionAmount"),
        type=txn_type,
        description=description,
        timestamp=parse_timestamp(parts[4]),
        order_id=order_id,
    )


class PatientCodec(RecordCodec[Patient]):
    """
    Patients carry their wallet: balance + transaction history.

    On decode the ledger replay is authoritative. A disagreement with the
    stored balance is collected in `integrity_errors` for the caller; no
    adjustment transaction is ever invented to hide it.
    """
    kind = "patient"
    min_fields = 7

    def __init__(self):
        self.integrity_errors: List[LedgerIntegrityError] = []

    def to_fields(self, p: Patient) -> Sequence:
        return [
            p.id, p.name, p.username, p.password_hash, p.email, p.phone, p.address,
            format_money(p.wallet.balance),
            encode_list(p.wallet.transactions, _format_transaction),
        ]

    def from_fields(self, f: Fields) -> Patient:
        patient_id = f.as_int(0, "id")
        persisted_balance = parse_money(f.text(7), "walletBalance") if f.has(7) else None
        transactions = decode_list(f.raw[8], _parse_transaction) if f.has(8) else []

        wallet, errors = ledger_service.restore_wallet(transactions, persisted_balance, patient_id)
        self.integrity_errors.extend(errors)

        return Patient(
            id=patient_id, name=f.text(1), username=f.text(2), password_hash=f.text(3),
            email=f.text(4), phone=f.text(5), address=f.text(6), wallet=wallet,
        )


# ==============================================================================
# ORDERS AND PRESCRIPTIONS (resolve medicine ids against the catalog)
# ==============================================================================

class CatalogCodec(RecordCodec[T]):
    """Codec whose line items reference medicines in a loaded catalog."""

    def __init__(self, catalog: Dict[int, Medicine]):
        self.catalog = catalog
        self.reference_failures: List[PharmacyError] = []

    def resolve(self, medicine_id: int, owner: str) -> Medicine:
        medicine = self.catalog.get(medicine_id)
        if medicine is None:
            failure = BusinessError.reference_failure(self.kind, medicine_id, owner)
            self.reference_failures.append(failure)
            raise failure
        return medicine


class OrderCodec(CatalogCodec[Order]):
    kind = "order"
    min_fields = 6

    def to_fields(self, o: Order) -> Sequence:
        return [
            o.id, o.patient_id, format_timestamp(o.order_date), format_money(o.total),
            o.status.value, o.payment_method.value, format_bool(o.paid),
            encode_list(o.items, lambda i: [i.medicine_id, i.quantity, format_money(i.unit_price)]),
            o.patient_name, o.patient_phone, o.patient_address,
            o.delivery_method.value if o.delivery_method else "",
            format_optional_int(o.prescription_id),
        ]

    def from_fields(self, f: Fields) -> Order:
        order_id = f.as_int(0, "id")
        owner = f"order #{order_id}"
        status = parse_enum(OrderStatus, f.text(4))

        def parse_item(parts: List[str]) -> OrderItem:
            if len(parts) < 2:
                raise BusinessError.parse_failure(f"{owner}: line item needs medicineId:quantity")
            medicine = self.resolve(parse_int(parts[0], "medicineId"), owner)
            # Unit price is optional in older files: fall back to the catalog price
            unit_price = parse_money(parts[2], "unitPrice") if len(parts) > 2 and parts[2] else medicine.price
            return OrderItem(medicine=medicine, quantity=parse_int(parts[1], "quantity"), unit_price=unit_price)

        return Order(
            id=order_id,
            patient_id=f.as_int(1, "patientId"),
            order_date=parse_timestamp(f.text(2), "orderDate"),
            total=parse_money(f.text(3), "total"),
            status=status,
            payment_method=parse_enum(PaymentMethod, f.text(5)),
            paid=parse_bool(f.text(6), "paid") if f.has(6) else status in PAID_STATES,
            items=decode_list(f.raw[7], parse_item, owner) if f.has(7) else [],
            patient_name=f.text(8),
            patient_phone=f.text(9),
            patient_address=f.text(10),
            delivery_method=parse_optional_enum(DeliveryMethod, f.text(11)),
            prescription_id=f.as_optional_int(12, "prescriptionId"),
        )


class PrescriptionCodec(CatalogCodec[Prescription]):
    kind = "prescription"
    min_fields = 5

    def to_fields(self, p: Prescription) -> Sequence:
        return [
            p.id, p.patient_id, p.doctor_id, format_date(p.issue_date),
            encode_list(p.items, lambda i: [i.medicine_id, i.quantity]),
            p.diagnosis, p.instructions, p.status.value, format_date(p.expiry_date),
            format_optional_int(p.pharmacy_id),
            format_optional_int(p.pharmacist_id),
            format_optional_int(p.order_id),
        ]

    def from_fields(self, f: Fields) -> Prescription:
        prescription_id = f.as_int(0, "id")
        owner = f"prescription #{prescription_id}"
        issue_date = parse_date(f.text(3), "issueDate")

        def parse_item(parts: List[str]) -> PrescriptionItem:
            if len(parts) < 2:
                raise BusinessError.parse_failure(f"{owner}: line item needs medicineId:quantity")
            medicine = self.resolve(parse_int(parts[0], "medicineId"), owner)
            return PrescriptionItem(medicine=medicine, quantity=parse_int(parts[1], "quantity"))

        if f.has(8) and f.text(8):
            expiry_date = parse_date(f.text(8), "expiryDate")
        else:
            expiry_date = issue_date + timedelta(days=settings.PRESCRIPTION_VALIDITY_DAYS)

        status_text = f.text(7)
        return Prescription(
            id=prescription_id,
            patient_id=f.as_int(1, "patientId"),
            doctor_id=f.as_int(2, "doctorId"),
            issue_date=issue_date,
            expiry_date=expiry_date,
            items=decode_list(f.raw[4], parse_item, owner),
            diagnosis=f.text(5),
            instructions=f.text(6),
            status=parse_enum(PrescriptionStatus, status_text) if status_text else PrescriptionStatus.CREATED,
            pharmacy_id=f.as_optional_int(9, "pharmacyId"),
            pharmacist_id=f.as_optional_int(10, "pharmacistId"),
            order_id=f.as_optional_int(11, "orderId"),
        )
