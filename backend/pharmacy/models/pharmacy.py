from typing import List, Optional

from pydantic import BaseModel, Field

from pharmacy.models.medicine import Medicine


class Pharmacy(BaseModel):
    """
    Pharmacy branch.

    Only id, name, address, phone and email are stored. `medicines` (the
    inventory fills draw from) and `prescription_ids` (the inbox of sent
    prescriptions) are wired up by DataSession at load time.
    """
    id: int
    name: str
    address: str = ""
    phone: str = ""
    email: str = ""
    medicines: List[Medicine] = Field(default_factory=list)
    prescription_ids: List[int] = Field(default_factory=list)

    def find_medicine(self, medicine_id: int) -> Optional[Medicine]:
        return next((m for m in self.medicines if m.id == medicine_id), None)
