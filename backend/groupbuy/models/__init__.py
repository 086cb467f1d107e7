from groupbuy.models.deal import Deal
from groupbuy.models.participant import Participant

__all__ = [
    "Deal",
    "Participant",
]
