from __future__ import annotations

from enum import Enum

from app.core.errors import InvalidState, ValidationError


class ListingStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SOLD = "SOLD"
    EXPIRED = "EXPIRED"


# Every legal move. APPROVED -> APPROVED is the renewal path.
TRANSITIONS: dict[ListingStatus, frozenset[ListingStatus]] = {
    ListingStatus.PENDING: frozenset({ListingStatus.APPROVED, ListingStatus.REJECTED}),
    ListingStatus.APPROVED: frozenset({ListingStatus.APPROVED, ListingStatus.EXPIRED, ListingStatus.SOLD}),
    ListingStatus.REJECTED: frozenset(),
    ListingStatus.SOLD: frozenset(),
    ListingStatus.EXPIRED: frozenset(),
}

# what the public catalogue shows when no status filter is given
PUBLIC_STATUS = ListingStatus.APPROVED


def parse_status(value: ListingStatus | str) -> ListingStatus:
    if isinstance(value, ListingStatus):
        return value
    try:
        return ListingStatus(str(value).upper().strip())
    except ValueError:
        raise ValidationError(f"Unknown listing status {value!r}") from None


def can_transition(current: ListingStatus | str, target: ListingStatus | str) -> bool:
    return parse_status(target) in TRANSITIONS[parse_status(current)]


def transition(current: ListingStatus | str, target: ListingStatus | str) -> ListingStatus:
    """
    Return the target status if the move is legal.
    Raises InvalidState otherwise; callers never write status directly.
    """
    cur = parse_status(current)
    tgt = parse_status(target)
    if tgt not in TRANSITIONS[cur]:
        raise InvalidState(
            f"Listing cannot move from {cur.value} to {tgt.value}",
            current=cur.value,
            target=tgt.value,
        )
    return tgt


def is_terminal(status: ListingStatus | str) -> bool:
    return not TRANSITIONS[parse_status(status)]
