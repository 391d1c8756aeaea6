from app.models.offer import Offer
from app.models.reservation import Reservation

__all__ = ["Offer", "Reservation"]
