from .appointment import Appointment
from .order import Order

__all__ = [
    "Appointment",
    "Order",
]
