"""
Flat-file store tests: first run, partial loads, atomic saves, full session reload.

Run: pytest backend/test_store.py  (or python backend/test_store.py)
"""
import sys
import os
sys.path.insert(0, os.path.dirname(__file__))

import stat
import tempfile
from datetime import date
from decimal import Decimal
from pathlib import Path
from unittest.mock import patch

import pytest

from pharmacy.core.exceptions import FormatVersionError, ReferenceFailure, StorageError
from pharmacy.core.security import verify_password
from pharmacy.db.init_db import init_db
from pharmacy.db.records import MedicineCodec
from pharmacy.db.session import DataSession
from pharmacy.db.store import EntityStore
from pharmacy.models import Medicine, Order, OrderItem, Patient, Pharmacy
from pharmacy.services import ledger_service, order_service, prescription_service
from seed_medicines import seed_medicines


def make_medicines(count=10):
    return [
        Medicine(id=i, name=f"Medicine {i}", description="Tablet; 500mg", manufacturer="Pharco",
                 price=Decimal("10.00") + i, quantity=100, category="General")
        for i in range(1, count + 1)
    ]


def test_missing_file_is_created_empty():
    with tempfile.TemporaryDirectory() as tmp:
        store = EntityStore(os.path.join(tmp, "nested", "data"))
        assert store.load_all("medicines.txt", MedicineCodec().decode) == []
        assert Path(tmp, "nested", "data", "medicines.txt").exists()
        assert store.failures == []


def test_save_writes_format_header():
    with tempfile.TemporaryDirectory() as tmp:
        store = EntityStore(tmp)
        codec = MedicineCodec()
        store.save_all("medicines.txt", make_medicines(2), codec.encode)

        lines = Path(tmp, "medicines.txt").read_text(encoding="utf-8").splitlines()
        assert lines[0] == "#format=2"
        assert len(lines) == 3
        assert store.load_all("medicines.txt", codec.decode) == make_medicines(2)


def test_one_bad_line_among_ten():
    with tempfile.TemporaryDirectory() as tmp:
        store = EntityStore(tmp)
        codec = MedicineCodec()
        lines = [codec.encode(m) for m in make_medicines(10)]
        lines[4] = "5|Medicine 5|truncated"
        Path(tmp, "medicines.txt").write_text("\n".join(lines) + "\n\n", encoding="utf-8")

        loaded = store.load_all("medicines.txt", codec.decode)

        assert len(loaded) == 9
        assert 5 not in [m.id for m in loaded]
        assert len(store.failures) == 1
        # Skipped line is kept aside, once, even across reloads
        store.load_all("medicines.txt", codec.decode)
        rejected = Path(tmp, "medicines.txt.rejected").read_text(encoding="utf-8").splitlines()
        assert rejected == ["5|Medicine 5|truncated"]


def test_newer_format_is_refused():
    with tempfile.TemporaryDirectory() as tmp:
        Path(tmp, "medicines.txt").write_text("#format=3\n", encoding="utf-8")
        with pytest.raises(FormatVersionError):
            EntityStore(tmp).load_all("medicines.txt", MedicineCodec().decode)


def test_headerless_file_reads_as_format_1():
    with tempfile.TemporaryDirectory() as tmp:
        Path(tmp, "medicines.txt").write_text(
            "2|Paracetamol|Fever reducer|Pharco|15.75|150|Fever Relief|false\n", encoding="utf-8"
        )
        loaded = EntityStore(tmp).load_all("medicines.txt", MedicineCodec().decode)
        assert loaded[0].price == Decimal("15.75")


def test_failed_save_keeps_previous_file():
    with tempfile.TemporaryDirectory() as tmp:
        store = EntityStore(tmp)
        codec = MedicineCodec()
        store.save_all("medicines.txt", make_medicines(3), codec.encode)
        before = Path(tmp, "medicines.txt").read_text(encoding="utf-8")

        with patch("pharmacy.db.store.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(StorageError):
                store.save_all("medicines.txt", make_medicines(1), codec.encode)

        assert Path(tmp, "medicines.txt").read_text(encoding="utf-8") == before
        assert sorted(os.listdir(tmp)) == ["medicines.txt"]


@pytest.mark.skipif(os.name == "nt", reason="POSIX permission bits")
def test_save_keeps_file_permissions():
    with tempfile.TemporaryDirectory() as tmp:
        store = EntityStore(tmp)
        codec = MedicineCodec()
        path = Path(tmp, "medicines.txt")

        store.save_all("medicines.txt", make_medicines(1), codec.encode)
        umask = os.umask(0)
        os.umask(umask)
        # A fresh file gets the usual umask mode, not the temp file's 0600
        assert stat.S_IMODE(path.stat().st_mode) == 0o666 & ~umask

        for mode in (0o644, 0o640):
            os.chmod(path, mode)
            store.save_all("medicines.txt", make_medicines(2), codec.encode)
            assert stat.S_IMODE(path.stat().st_mode) == mode


def test_unreadable_file_is_storage_error():
    with tempfile.TemporaryDirectory() as tmp:
        # A directory where the file should be
        os.mkdir(os.path.join(tmp, "medicines.txt"))
        with pytest.raises(StorageError) as exc_info:
            EntityStore(tmp).load_all("medicines.txt", MedicineCodec().decode)
        assert isinstance(exc_info.value.__cause__, OSError)


def test_session_reload_keeps_everything():
    with tempfile.TemporaryDirectory() as tmp:
        session = DataSession(tmp).load()
        session.medicines.extend(make_medicines(3))
        session.pharmacies.append(Pharmacy(id=1, name="Elt3ban Pharmacy", address="45 El Tahrir St, Cairo"))
        patient = Patient(id=1, name="Amr Hassan", username="amr_patient", address="123 El Geish St | Cairo")
        session.patients.append(patient)
        ledger_service.deposit(patient.wallet, "100.00", patient_id=patient.id)

        order = order_service.create_order(session.orders, patient.id, patient)
        order_service.add_line_item(order, session.medicines[0], 2)
        order_service.pay_from_wallet(order, patient)

        prescription = prescription_service.create_prescription(
            session.prescriptions, doctor_id=1, patient_id=patient.id, instructions="Twice daily",
            items=[(session.medicines[1], 1)], today=date(2026, 3, 1),
        )
        prescription_service.send(prescription, session.pharmacies[0])
        session.commit()

        reloaded = DataSession(tmp).load()

        assert reloaded.failures == []
        assert reloaded.integrity_errors == []
        assert reloaded.get_medicine(1).quantity == 98
        assert reloaded.get_patient(1).wallet == patient.wallet
        assert reloaded.get_order(order.id) == order
        assert reloaded.get_order(order.id).items[0].medicine is reloaded.get_medicine(1)
        assert reloaded.get_prescription(prescription.id) == prescription

        pharmacy = reloaded.get_pharmacy(1)
        assert pharmacy.prescription_ids == [prescription.id]
        assert pharmacy.find_medicine(2) is reloaded.get_medicine(2)


def test_tampered_balance_reports_integrity_error():
    with tempfile.TemporaryDirectory() as tmp:
        session = DataSession(tmp).load()
        patient = Patient(id=1, name="Amr Hassan", username="amr_patient")
        ledger_service.deposit(patient.wallet, "500.00")
        patient.wallet.balance = Decimal("600.00")
        session.patients.append(patient)
        session.commit("patients")

        reloaded = DataSession(tmp).load()
        wallet = reloaded.get_patient(1).wallet

        assert wallet.balance == Decimal("500.00")
        assert len(wallet.transactions) == 1
        assert len(reloaded.integrity_errors) == 1


def test_dangling_medicine_reference_is_dropped():
    with tempfile.TemporaryDirectory() as tmp:
        session = DataSession(tmp).load()
        kept, gone = make_medicines(2)
        session.medicines.append(kept)
        session.orders.append(Order(
            id=1, patient_id=1, total=Decimal("33.00"),
            items=[OrderItem(medicine=kept, quantity=1, unit_price=kept.price),
                   OrderItem(medicine=gone, quantity=1, unit_price=gone.price)],
        ))
        session.commit("medicines", "orders")

        reloaded = DataSession(tmp).load()
        order = reloaded.get_order(1)

        assert [i.medicine_id for i in order.items] == [kept.id]
        assert order.total == Decimal("33.00")
        assert any(isinstance(f, ReferenceFailure) for f in reloaded.failures)


def test_init_db_creates_admin_once():
    with tempfile.TemporaryDirectory() as tmp:
        session = init_db(tmp)
        assert len(session.admins) == 1
        assert session.admins[0].password_hash.startswith("$2b$")
        assert not verify_password("admin123", session.admins[0].password_hash)

        again = init_db(tmp)
        assert again.admins == session.admins
        for name in ("medicines", "patients", "orders", "prescriptions"):
            assert Path(tmp, f"{name}.txt").exists()


def test_seed_medicines_is_idempotent():
    with tempfile.TemporaryDirectory() as tmp:
        session = seed_medicines(tmp)
        names = {m.name: m for m in session.medicines}
        assert len(session.medicines) == 5
        assert names["Paracetamol"].price == Decimal("15.75")
        assert names["Amoxicillin"].requires_prescription
        assert names["Amoxicillin"].quantity == 80

        again = seed_medicines(tmp)
        assert len(again.medicines) == 5
        assert len(again.pharmacies) == 1


def main():
    tests = [v for k, v in sorted(globals().items()) if k.startswith("test_") and callable(v)]
    for test in tests:
        test()
        print(f"  ✅ {test.__name__}")
    print(f"\nAll {len(tests)} store tests passed")


if __name__ == "__main__":
    main()
