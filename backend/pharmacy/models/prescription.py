"""
Prescription written by a doctor for a patient.

Status flow: CREATED -> SENT_TO_PHARMACY -> FILLED -> CONVERTED_TO_ORDER.
A filled prescription stays usable until it is converted or expires.
"""
from datetime import date
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from pharmacy.models.medicine import Medicine


class PrescriptionStatus(str, Enum):
    CREATED = "CREATED"
    SENT_TO_PHARMACY = "SENT_TO_PHARMACY"
    FILLED = "FILLED"
    CONVERTED_TO_ORDER = "CONVERTED_TO_ORDER"


class PrescriptionItem(BaseModel):
    medicine: Medicine  # the catalog object, not a copy
    quantity: int = Field(gt=0)

    @property
    def medicine_id(self) -> int:
        return self.medicine.id


class Prescription(BaseModel):
    id: int
    patient_id: int
    doctor_id: int
    issue_date: date
    expiry_date: date
    items: List[PrescriptionItem] = Field(default_factory=list)
    diagnosis: str = ""
    instructions: str = ""
    status: PrescriptionStatus = PrescriptionStatus.CREATED
    pharmacy_id: Optional[int] = None
    pharmacist_id: Optional[int] = None  # who filled it
    order_id: Optional[int] = None  # set on conversion

    def is_expired(self, today: date) -> bool:
        return self.expiry_date < today

    @property
    def requires_prescription(self) -> bool:
        """True if any item is a prescription-only medicine."""
        return any(item.medicine.requires_prescription for item in self.items)
