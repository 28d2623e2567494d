from pharmacy.models.medicine import Medicine
from pharmacy.models.wallet import Transaction, TransactionType, Wallet
from pharmacy.models.user import User, Patient, Doctor, Pharmacist, Admin
from pharmacy.models.pharmacy import Pharmacy
from pharmacy.models.order import Order, OrderItem, OrderStatus, PaymentMethod, DeliveryMethod
from pharmacy.models.prescription import Prescription, PrescriptionItem, PrescriptionStatus

__all__ = [
    "Medicine", "Transaction", "TransactionType", "Wallet",
    "User", "Patient", "Doctor", "Pharmacist", "Admin", "Pharmacy",
    "Order", "OrderItem", "OrderStatus", "PaymentMethod", "DeliveryMethod",
    "Prescription", "PrescriptionItem", "PrescriptionStatus",
]
