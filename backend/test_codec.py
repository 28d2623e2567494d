"""
Line codec tests: escaping, nested lists, every record type, old file layouts.

Run: pytest backend/test_codec.py  (or python backend/test_codec.py)
"""
import sys
import os
sys.path.insert(0, os.path.dirname(__file__))

from datetime import date, datetime
from decimal import Decimal

import pytest

from pharmacy.core.exceptions import ParseFailure
from pharmacy.db.codec import (
    decode_list,
    encode_list,
    escape,
    join_fields,
    split_escaped,
    split_fields,
    unescape,
)
from pharmacy.db.records import (
    AdminCodec,
    DoctorCodec,
    MedicineCodec,
    OrderCodec,
    PatientCodec,
    PharmacistCodec,
    PharmacyCodec,
    PrescriptionCodec,
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
)
from pharmacy.services import ledger_service

NASTY = 'a|b;c:d\\e\nf\rg'


def make_catalog():
    paracetamol = Medicine(id=2, name="Paracetamol", description="Fever reducer", manufacturer="Pharco",
                           price=Decimal("15.75"), quantity=150, category="Fever Relief")
    amoxicillin = Medicine(id=3, name="Amoxicillin", description="Antibiotic", manufacturer="EIPICO",
                           price=Decimal("45.00"), quantity=80, category="Antibiotics",
                           requires_prescription=True)
    return {2: paracetamol, 3: amoxicillin}


def test_escape_roundtrip():
    assert unescape(escape(NASTY)) == NASTY
    assert "\n" not in escape(NASTY)
    assert escape("plain text") == "plain text"


def test_split_ignores_escaped_delimiters():
    line = join_fields(["1", NASTY, "last"])
    fields = split_fields(line)
    assert len(fields) == 3
    assert unescape(fields[1]) == NASTY
    assert split_escaped("a\\;b;c", ";") == ["a\\;b", "c"]


def test_bad_escape_is_parse_failure():
    with pytest.raises(ParseFailure):
        unescape("abc\\")
    with pytest.raises(ParseFailure):
        unescape("abc\\x")


def test_nested_list_with_delimiters():
    items = [("x:y", 1), ("semi;colon", 2), ("", 3)]
    raw = encode_list(items, lambda i: [i[0], i[1]])
    decoded = decode_list(raw, lambda parts: (parts[0], int(parts[1])))
    assert decoded == items
    assert decode_list("", lambda parts: parts) == []


def test_medicine_roundtrip():
    codec = MedicineCodec()
    medicine = Medicine(id=7, name=NASTY, description=NASTY, manufacturer="M|x",
                        price=Decimal("0.10"), quantity=0, category="c;d", requires_prescription=True)
    line = codec.encode(medicine)
    assert "\n" not in line
    assert codec.decode(line) == medicine


def test_people_roundtrip():
    doctor = Doctor(id=1, name="Dr. Mohamed Saleh", username="dr_mohamed", password_hash="$2b$12$abc",
                    email="dr@hospital.com", phone="0123", specialization=NASTY, license_number="L:1")
    pharmacist = Pharmacist(id=1, name="Fatima Ahmed", username="fatima_pharm", password_hash="$2b$12$abc",
                            license_number="Pharm License 54321", qualification="Clinical Pharmacist",
                            pharmacy_id=1)
    admin = Admin(id=1, name="Ahmed Nader", username="admin", position="Head|Pharmacist", department="Management")
    pharmacy = Pharmacy(id=1, name="Elt3ban Pharmacy", address="45 El Tahrir St; Cairo", phone="02-16999",
                        email="info@elt3banpharmacy.com")

    assert DoctorCodec().decode(DoctorCodec().encode(doctor)) == doctor
    assert PharmacistCodec().decode(PharmacistCodec().encode(pharmacist)) == pharmacist
    assert AdminCodec().decode(AdminCodec().encode(admin)) == admin
    assert PharmacyCodec().decode(PharmacyCodec().encode(pharmacy)) == pharmacy

    unaffiliated = pharmacist.model_copy(update={"pharmacy_id": None})
    assert PharmacistCodec().decode(PharmacistCodec().encode(unaffiliated)).pharmacy_id is None


def test_patient_with_wallet_roundtrip():
    patient = Patient(id=1, name="Amr Hassan", username="amr_patient", address="123 El Geish St, Cairo")
    ledger_service.deposit(patient.wallet, "500.00", "Initial deposit: cash | card")
    ledger_service.pay(patient.wallet, "31.50", order_id=1)
    ledger_service.withdraw(patient.wallet, "8.50", NASTY)

    codec = PatientCodec()
    loaded = codec.decode(codec.encode(patient))

    assert loaded == patient
    assert loaded.wallet.balance == Decimal("460.00")
    assert [t.order_id for t in loaded.wallet.transactions] == [None, 1, None]
    assert codec.integrity_errors == []


def test_order_roundtrip():
    catalog = make_catalog()
    order = Order(
        id=4, patient_id=1, order_date=datetime(2026, 3, 1, 9, 30, 15),
        items=[OrderItem(medicine=catalog[2], quantity=2, unit_price=Decimal("15.75")),
               OrderItem(medicine=catalog[3], quantity=1, unit_price=Decimal("40.00"))],
        total=Decimal("71.50"), status=OrderStatus.PAID, payment_method=PaymentMethod.CARD, paid=True,
        patient_name="Amr Hassan", patient_address=NASTY, delivery_method=DeliveryMethod.HOME_DELIVERY,
        prescription_id=9,
    )
    codec = OrderCodec(catalog)
    loaded = codec.decode(codec.encode(order))

    assert loaded == order
    # Items point at the catalog objects themselves
    assert loaded.items[0].medicine is catalog[2]
    # Stored unit price wins over today's catalog price
    assert loaded.items[1].unit_price == Decimal("40.00")


def test_prescription_roundtrip():
    catalog = make_catalog()
    prescription = Prescription(
        id=2, patient_id=1, doctor_id=1, issue_date=date(2026, 3, 1), expiry_date=date(2026, 3, 31),
        items=[PrescriptionItem(medicine=catalog[3], quantity=1)],
        diagnosis="Throat: infection", instructions="1 capsule every 8h; after meals",
        status=PrescriptionStatus.FILLED, pharmacy_id=1, pharmacist_id=1,
    )
    codec = PrescriptionCodec(catalog)
    assert codec.decode(codec.encode(prescription)) == prescription


def test_older_layouts_still_load():
    catalog = make_catalog()

    patient = PatientCodec().decode("1|Amr Hassan|amr_patient|h|amr@gmail.com|0112|123 El Geish St")
    assert patient.wallet.balance == Decimal("0.00")
    assert patient.wallet.transactions == []

    pharmacist = PharmacistCodec().decode("1|Fatima Ahmed|fatima_pharm|h|f@pharmacy.com|0105|PL-54321|1")
    assert pharmacist.qualification == "Qualified Pharmacist"
    assert pharmacist.pharmacy_id == 1

    prescription = PrescriptionCodec(catalog).decode("5|1|1|2026-03-01|3:1;2:2|Flu|Rest")
    assert prescription.status == PrescriptionStatus.CREATED
    assert prescription.expiry_date == date(2026, 3, 31)
    assert [i.quantity for i in prescription.items] == [1, 2]

    order = OrderCodec(catalog).decode("3|1|2026-03-01 10:00:00|31.50|PENDING|NOT_PAID")
    assert order.paid is False
    assert order.items == []
    assert order.order_date == datetime(2026, 3, 1, 10, 0, 0)

    # Line item without a stored price takes the catalog price
    order = OrderCodec(catalog).decode("3|1|2026-03-01T10:00:00|31.50|PAID|WALLET|true|2:2")
    assert order.items[0].unit_price == Decimal("15.75")


def test_legacy_payment_recovers_order_id():
    line = "1|Amr|amr|h|e|p|a|468.50|1:500.00:DEPOSIT:Initial:2026-03-01T10\\:00\\:00;" \
           "2:31.50:PAYMENT:Payment for Order #12:2026-03-01T10\\:05\\:00"
    patient = PatientCodec().decode(line)
    assert patient.wallet.transactions[1].order_id == 12
    assert patient.wallet.balance == Decimal("468.50")


def test_unknown_medicine_drops_only_that_item():
    catalog = make_catalog()
    codec = OrderCodec(catalog)
    order = codec.decode("8|1|2026-03-01T10:00:00|110.00|PENDING|NOT_PAID|false|2:2:15.75;99:1:78.50")

    assert [i.medicine_id for i in order.items] == [2]
    # Stored total is kept as written
    assert order.total == Decimal("110.00")
    assert len(codec.reference_failures) == 1


def test_malformed_lines_are_parse_failures():
    bad_lines = [
        (MedicineCodec(), "1|Aspirin|Pain reliever"),
        (MedicineCodec(), "x|Aspirin|d|m|20.50|100|Pain|false"),
        (MedicineCodec(), "1|Aspirin|d|m|-1.00|100|Pain|false"),
        (MedicineCodec(), "1|Aspirin|d|m|20.50|100|Pain|maybe"),
        (OrderCodec({}), "1|1|2026-03-01T10:00:00|0.00|PENDING|NOT_PAID|true"),
        (OrderCodec({}), "1|1|yesterday|0.00|PENDING|NOT_PAID"),
        (PatientCodec(), "1|Amr|amr|h|e|p|a|10.00|1:10.00:GIFT:x:2026-03-01T10\\:00\\:00"),
    ]
    for codec, line in bad_lines:
        with pytest.raises(ParseFailure):
            codec.decode(line)


def main():
    tests = [v for k, v in sorted(globals().items()) if k.startswith("test_") and callable(v)]
    for test in tests:
        test()
        print(f"  ✅ {test.__name__}")
    print(f"\nAll {len(tests)} codec tests passed")


if __name__ == "__main__":
    main()
