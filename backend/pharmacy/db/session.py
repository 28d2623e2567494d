"""
DataSession: every collection loaded into memory, plus commit().

Load order matters: the medicine catalog is loaded first so orders and
prescriptions can resolve their line items against it. Workflows mutate
the objects held here; commit() writes the affected collections back.
"""
import logging
from typing import Dict, List, Optional

from pharmacy.core.exceptions import LedgerIntegrityError
from pharmacy.db.records import (
    AdminCodec,
    DoctorCodec,
    MedicineCodec,
    OrderCodec,
    PatientCodec,
    PharmacistCodec,
    PharmacyCodec,
    PrescriptionCodec,
    RecordCodec,
)
from pharmacy.db.store import EntityStore
from pharmacy.models import (
    Admin,
    Doctor,
    Medicine,
    Order,
    Patient,
    Pharmacist,
    Pharmacy,
    Prescription,
    User,
)

logger = logging.getLogger(__name__)

FILES = {
    "medicines": "medicines.txt",
    "patients": "patients.txt",
    "doctors": "doctors.txt",
    "pharmacists": "pharmacists.txt",
    "admins": "admins.txt",
    "pharmacies": "pharmacies.txt",
    "orders": "orders.txt",
    "prescriptions": "prescriptions.txt",
}


class DataSession:
    def __init__(self, data_dir: Optional[str] = None):
        self.store = EntityStore(data_dir)
        self.medicines: List[Medicine] = []
        self.patients: List[Patient] = []
        self.doctors: List[Doctor] = []
        self.pharmacists: List[Pharmacist] = []
        self.admins: List[Admin] = []
        self.pharmacies: List[Pharmacy] = []
        self.orders: List[Order] = []
        self.prescriptions: List[Prescription] = []
        self.integrity_errors: List[LedgerIntegrityError] = []
        self._codecs: Dict[str, RecordCodec] = {}

    @property
    def failures(self):
        return self.store.failures

    @property
    def catalog(self) -> Dict[int, Medicine]:
        return {m.id: m for m in self.medicines}

    def _load(self, name: str, codec: RecordCodec) -> list:
        self._codecs[name] = codec
        return self.store.load_all(FILES[name], codec.decode)

    def load(self) -> "DataSession":
        """
        Read every collection from disk.

        Skipped lines and dropped line items end up in `failures`, wallet
        mismatches in `integrity_errors`. StorageError aborts the load.
        """
        self.medicines = self._load("medicines", MedicineCodec())
        catalog = self.catalog
        self.pharmacies = self._load("pharmacies", PharmacyCodec())

        patient_codec = PatientCodec()
        self.patients = self._load("patients", patient_codec)
        self.integrity_errors = list(patient_codec.integrity_errors)
        self.doctors = self._load("doctors", DoctorCodec())
        self.pharmacists = self._load("pharmacists", PharmacistCodec())
        self.admins = self._load("admins", AdminCodec())

        for name, codec in (("orders", OrderCodec(catalog)), ("prescriptions", PrescriptionCodec(catalog))):
            setattr(self, name, self._load(name, codec))
            self.store.failures.extend(codec.reference_failures)

        self._wire_pharmacies()

        logger.info(
            f"Loaded {len(self.medicines)} medicines, {len(self.patients)} patients, "
            f"{len(self.orders)} orders, {len(self.prescriptions)} prescriptions "
            f"from {self.store.data_dir}"
        )
        if self.failures or self.integrity_errors:
            logger.warning(
                f"Load finished with {len(self.failures)} skipped record(s)/item(s) "
                f"and {len(self.integrity_errors)} wallet integrity error(s)"
            )
        return self

    def _wire_pharmacies(self) -> None:
        """Runtime-only links: shared inventory and the prescription inbox."""
        for pharmacy in self.pharmacies:
            pharmacy.medicines = self.medicines
            pharmacy.prescription_ids = [p.id for p in self.prescriptions if p.pharmacy_id == pharmacy.id]

    def commit(self, *names: str) -> None:
        """
        Save the named collections, or all of them.

        Example:
            session.commit("orders", "patients", "medicines")
        """
        for name in names or tuple(FILES):
            if name not in FILES:
                raise KeyError(f"Unknown collection: {name}")
            codec = self._codecs.get(name) or self._default_codec(name)
            self.store.save_all(FILES[name], getattr(self, name), codec.encode)

    def _default_codec(self, name: str) -> RecordCodec:
        codecs = {
            "medicines": MedicineCodec,
            "patients": PatientCodec,
            "doctors": DoctorCodec,
            "pharmacists": PharmacistCodec,
            "admins": AdminCodec,
            "pharmacies": PharmacyCodec,
        }
        if name in codecs:
            return codecs[name]()
        return OrderCodec(self.catalog) if name == "orders" else PrescriptionCodec(self.catalog)

    # ==========================================================================
    # LOOKUPS
    # ==========================================================================

    @staticmethod
    def _by_id(records, record_id: int):
        return next((r for r in records if r.id == record_id), None)

    def get_medicine(self, medicine_id: int) -> Optional[Medicine]:
        return self._by_id(self.medicines, medicine_id)

    def get_patient(self, patient_id: int) -> Optional[Patient]:
        return self._by_id(self.patients, patient_id)

    def get_doctor(self, doctor_id: int) -> Optional[Doctor]:
        return self._by_id(self.doctors, doctor_id)

    def get_pharmacist(self, pharmacist_id: int) -> Optional[Pharmacist]:
        return self._by_id(self.pharmacists, pharmacist_id)

    def get_pharmacy(self, pharmacy_id: int) -> Optional[Pharmacy]:
        return self._by_id(self.pharmacies, pharmacy_id)

    def get_order(self, order_id: int) -> Optional[Order]:
        return self._by_id(self.orders, order_id)

    def get_prescription(self, prescription_id: int) -> Optional[Prescription]:
        return self._by_id(self.prescriptions, prescription_id)

    def all_users(self) -> List[User]:
        """Every account, for login lookups."""
        return [*self.patients, *self.doctors, *self.pharmacists, *self.admins]
