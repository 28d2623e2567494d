from typing import Optional

from pydantic import BaseModel, Field

from pharmacy.models.wallet import Wallet


class User(BaseModel):
    """Credentials and contact fields shared by every role."""
    id: int
    name: str
    username: str
    password_hash: str = ""
    email: str = ""
    phone: str = ""


class Patient(User):
    address: str = ""
    # Composition: one wallet per patient, created with it
    wallet: Wallet = Field(default_factory=Wallet)


class Doctor(User):
    specialization: str = ""
    license_number: str = ""


class Pharmacist(User):
    license_number: str = ""
    qualification: str = "Qualified Pharmacist"
    # Aggregation: the pharmacy record may not exist
    pharmacy_id: Optional[int] = None


class Admin(User):
    position: str = ""
    department: str = ""
