"""Seed the demo medicine catalog and pharmacy branch."""
from decimal import Decimal

from pharmacy.db.init_db import init_db
from pharmacy.models import Medicine, Pharmacy
from pharmacy.core.config import settings

MEDICINES = [
    {
        "name": "Aspirin",
        "description": "Pain reliever",
        "manufacturer": "Al-Kahira Pharm",
        "price": 20.50,
        "units": 100,
        "category": "Pain Relief",
        "requires_prescription": False,
    },
    {
        "name": "Paracetamol",
        "description": "Fever reducer",
        "manufacturer": "Pharco",
        "price": 15.75,
        "units": 150,
        "category": "Fever Relief",
        "requires_prescription": False,
    },
    {
        "name": "Amoxicillin",
        "description": "Antibiotic",
        "manufacturer": "EIPICO",
        "price": 45.00,
        "units": 80,
        "category": "Antibiotics",
        "requires_prescription": True,
    },
    {
        "name": "Lisinopril",
        "description": "Blood pressure medication",
        "manufacturer": "Pfizer Egypt",
        "price": 35.25,
        "units": 60,
        "category": "Blood Pressure",
        "requires_prescription": True,
    },
    {
        "name": "Omeprazole",
        "description": "Acid reflux medication",
        "manufacturer": "GlaxoSmithKline",
        "price": 25.00,
        "units": 70,
        "category": "Stomach",
        "requires_prescription": False,
    },
]

DEMO_PHARMACY = {
    "name": "Elt3ban Pharmacy",
    "address": "45 El Tahrir St, Cairo",
    "phone": "02-16999",
    "email": "info@elt3banpharmacy.com",
}


def seed_medicines(data_dir=None):
    """
    Add any demo medicine not already in the catalog (matched by name).

    Returns:
        the loaded DataSession
    """
    session = init_db(data_dir)

    existing = {m.name for m in session.medicines}
    next_id = max((m.id for m in session.medicines), default=0) + 1
    added = []
    for med in MEDICINES:
        if med["name"] in existing:
            continue
        medicine = Medicine(
            id=next_id,
            name=med["name"],
            description=med["description"],
            manufacturer=med["manufacturer"],
            price=Decimal(str(med["price"])),
            quantity=med["units"],
            category=med["category"],
            requires_prescription=med["requires_prescription"],
        )
        session.medicines.append(medicine)
        added.append(medicine)
        next_id += 1

    if not session.pharmacies:
        session.pharmacies.append(Pharmacy(id=1, **DEMO_PHARMACY))
        print(f"Created demo pharmacy: {DEMO_PHARMACY['name']}")

    session.commit("medicines", "pharmacies")
    session.load()

    print(f"\nAdded {len(added)} medicine(s); catalog now has {len(session.medicines)}")
    print("=" * 80)
    for med in session.medicines:
        rx = "PRESCRIPTION REQUIRED" if med.requires_prescription else "OTC"
        print(f"  #{med.id} {med.name} ({rx})")
        print(f"     Price: {med.price:.2f} {settings.CURRENCY} | Stock: {med.quantity} units")
    return session


if __name__ == "__main__":
    seed_medicines()
