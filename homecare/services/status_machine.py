"""
Booking status machine.

NEW -> CONFIRMED -> ASSIGNED -> ACCEPTED -> IN_PROGRESS -> COMPLETED, with
CANCELLED and REJECTED reachable from every non-terminal state. The workflow
and lifecycle services enforce the preconditions; this module only knows which
edges exist.
"""

from homecare.booking_models import BookingStatus
from homecare.services.errors import InvalidTransition

TERMINAL_STATUSES = frozenset(
    {BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.REJECTED}
)

_CLOSE = {BookingStatus.CANCELLED, BookingStatus.REJECTED}

ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.NEW: frozenset(
        {BookingStatus.CONFIRMED, BookingStatus.ASSIGNED, *_CLOSE}
    ),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.ASSIGNED, *_CLOSE}),
    # ASSIGNED -> ASSIGNED is a reassignment, ASSIGNED -> NEW a provider decline
    BookingStatus.ASSIGNED: frozenset(
        {
            BookingStatus.ASSIGNED,
            BookingStatus.ACCEPTED,
            BookingStatus.NEW,
            BookingStatus.COMPLETED,
            *_CLOSE,
        }
    ),
    BookingStatus.ACCEPTED: frozenset(
        {BookingStatus.IN_PROGRESS, BookingStatus.COMPLETED, *_CLOSE}
    ),
    BookingStatus.IN_PROGRESS: frozenset({BookingStatus.COMPLETED, *_CLOSE}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.REJECTED: frozenset(),
}


def is_terminal(status: BookingStatus) -> bool:
    return BookingStatus(status) in TERMINAL_STATUSES


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return BookingStatus(target) in ALLOWED_TRANSITIONS[BookingStatus(current)]


def ensure_transition(current: BookingStatus, target: BookingStatus) -> None:
    if not can_transition(current, target):
        raise InvalidTransition(
            f"Booking cannot move from {BookingStatus(current).value} "
            f"to {BookingStatus(target).value}"
        )
