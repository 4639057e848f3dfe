from .coaching import Coach, Member, Package, AggregateAdjustment
from .scheduling import Event, EventParticipant, BookingOperation
from .ledger import CreditTransaction

__all__ = [
    'Coach', 'Member', 'Package', 'AggregateAdjustment',
    'Event', 'EventParticipant', 'BookingOperation',
    'CreditTransaction',
]
