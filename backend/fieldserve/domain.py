"""Domain primitives: statuses, assignment union, lifecycle table and id helpers."""

import enum
import random
from dataclasses import dataclass
from datetime import date, datetime


class RequestStatus(str, enum.Enum):
    """Service request lifecycle states."""

    NEW = "NEW"
    ACCEPTED = "ACCEPTED"
    SUCCESS = "SUCCESS"
    CANCELLED = "CANCELLED"
    PAID = "PAID"


class WorkerStatus(str, enum.Enum):
    """Verification states of a field worker."""

    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"
    SUSPENDED = "SUSPENDED"


class TransitionAction(str, enum.Enum):
    """Actions a worker can take on a request."""

    ACCEPT = "accept"
    DECLINE = "decline"
    COMPLETE = "complete"
    CANCEL = "cancel"


@dataclass(frozen=True)
class Unassigned:
    """Broadcast request: any eligible worker in the city may claim it."""

    @property
    def worker_id(self) -> None:
        return None

    def allows(self, actor_id: str) -> bool:
        return True


@dataclass(frozen=True)
class AssignedTo:
    """Request targeted at (or claimed by) one worker."""

    worker_id: str

    def allows(self, actor_id: str) -> bool:
        return self.worker_id == actor_id


Assignment = Unassigned | AssignedTo

UNASSIGNED = Unassigned()


def assignment_for(worker_id: str | None) -> Assignment:
    """Build the assignment for a stored worker id (empty means broadcast)."""
    if worker_id:
        return AssignedTo(worker_id)
    return UNASSIGNED


# status -> statuses reachable by a single action
ALLOWED_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.NEW: frozenset({RequestStatus.ACCEPTED, RequestStatus.CANCELLED}),
    RequestStatus.ACCEPTED: frozenset({RequestStatus.SUCCESS, RequestStatus.CANCELLED}),
    RequestStatus.SUCCESS: frozenset({RequestStatus.PAID}),
    RequestStatus.CANCELLED: frozenset(),
    RequestStatus.PAID: frozenset(),
}

ACTION_TARGET: dict[TransitionAction, RequestStatus] = {
    TransitionAction.ACCEPT: RequestStatus.ACCEPTED,
    TransitionAction.DECLINE: RequestStatus.CANCELLED,
    TransitionAction.COMPLETE: RequestStatus.SUCCESS,
    TransitionAction.CANCEL: RequestStatus.CANCELLED,
}


# Statuses an action may start from; decline and cancel both need the actor to own the request
ACTION_SOURCES: dict[TransitionAction, frozenset[RequestStatus]] = {
    TransitionAction.ACCEPT: frozenset({RequestStatus.NEW}),
    TransitionAction.DECLINE: frozenset({RequestStatus.NEW, RequestStatus.ACCEPTED}),
    TransitionAction.COMPLETE: frozenset({RequestStatus.ACCEPTED}),
    TransitionAction.CANCEL: frozenset({RequestStatus.NEW, RequestStatus.ACCEPTED}),
}


def can_transition(current: RequestStatus, target: RequestStatus) -> bool:
    """Check the lifecycle table."""
    return target in ALLOWED_TRANSITIONS[current]


def is_terminal(status: RequestStatus) -> bool:
    """CANCELLED and PAID accept no further transitions."""
    return not ALLOWED_TRANSITIONS[status]


def new_id(prefix: str, today: date | None = None) -> str:
    """
    Generate an id of the form ``PREFIX-YYYYMMDD-####``.

    The suffix is a random 4-digit number, so ids are unique only with high
    probability; callers that persist ids check for collisions.
    """
    day = today or datetime.now().date()
    suffix = random.randint(1000, 9999)
    return f"{prefix}-{day:%Y%m%d}-{suffix}"


def alt_phone_format(phone: str, country_code: str = "+91") -> str:
    """
    Toggle the country-code prefix of a phone number.

    ``+919998887776`` becomes ``9998887776`` and vice versa. Numbers that are
    neither form are returned unchanged.
    """
    phone = phone.strip()
    if phone.startswith(country_code):
        return phone[len(country_code):]
    if len(phone) == 10 and phone.isdigit():
        return f"{country_code}{phone}"
    return phone


def phone_key(phone: str, country_code: str = "+91") -> str | None:
    """National form of a phone number, used as the customer uniqueness key."""
    phone = phone.strip()
    if not phone:
        return None
    if phone.startswith(country_code):
        return phone[len(country_code):]
    return phone
