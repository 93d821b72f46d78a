# marketplace/domain/state_machine.py

from enum import Enum
from typing import Dict, Set

from marketplace.domain.exceptions import InvalidStateTransitionError


class BookingStatus(str, Enum):
    BOOKED = "booked"
    CANCELLED = "cancelled"


class ItemStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class _StateMachine:
    """
    Shared transition-table logic.
    Subclasses declare the status enum and the legal transitions.
    """

    _STATUS_TYPE: type
    _ALLOWED_TRANSITIONS: Dict[Enum, Set[Enum]] = {}

    @classmethod
    def can_transition(cls, from_status, to_status) -> bool:
        """
        Returns True if transition is allowed.
        """
        cls._ensure_valid_status(from_status)
        cls._ensure_valid_status(to_status)

        return to_status in cls._ALLOWED_TRANSITIONS.get(from_status, set())

    @classmethod
    def validate_transition(cls, from_status, to_status) -> None:
        """
        Raises InvalidStateTransitionError if transition is illegal.
        """
        if not cls.can_transition(from_status, to_status):
            raise InvalidStateTransitionError(
                from_state=from_status.value,
                to_state=to_status.value,
            )

    @classmethod
    def is_terminal(cls, status) -> bool:
        cls._ensure_valid_status(status)
        return len(cls._ALLOWED_TRANSITIONS.get(status, set())) == 0

    @classmethod
    def get_allowed_transitions(cls, status) -> Set:
        cls._ensure_valid_status(status)
        return cls._ALLOWED_TRANSITIONS.get(status, set())

    @classmethod
    def _ensure_valid_status(cls, status) -> None:
        if not isinstance(status, cls._STATUS_TYPE):
            raise TypeError(
                f"Expected {cls._STATUS_TYPE.__name__}, got {type(status)}"
            )


class BookingStateMachine(_StateMachine):
    """
    Lifecycle of a persisted booking.
    Cancellation is the only transition; cancelled is terminal.
    """

    _STATUS_TYPE = BookingStatus
    _ALLOWED_TRANSITIONS: Dict[BookingStatus, Set[BookingStatus]] = {
        BookingStatus.BOOKED: {
            BookingStatus.CANCELLED,
        },
        BookingStatus.CANCELLED: set(),
    }


class ItemStateMachine(_StateMachine):
    """
    Moderation lifecycle of a listing.
    Edits send approved or rejected listings back to pending.
    """

    _STATUS_TYPE = ItemStatus
    _ALLOWED_TRANSITIONS: Dict[ItemStatus, Set[ItemStatus]] = {
        ItemStatus.DRAFT: {
            ItemStatus.PENDING,
        },
        ItemStatus.PENDING: {
            ItemStatus.APPROVED,
            ItemStatus.REJECTED,
        },
        ItemStatus.APPROVED: {
            ItemStatus.PENDING,
        },
        ItemStatus.REJECTED: {
            ItemStatus.PENDING,
        },
    }
