class MarketplaceError(Exception):
    """
    Base exception for all domain-level errors
    inside the booking marketplace.
    """


class InvalidInputError(MarketplaceError):
    """Raised when a request is missing fields or carries malformed values."""


class NotFoundError(MarketplaceError):
    """Raised when an item, booking or discount reference cannot be resolved."""


class DuplicateBookingError(MarketplaceError):
    """Raised when the buyer already holds a live booking for the same occurrence."""


class CapacityExceededError(MarketplaceError):
    """
    Raised when admitting a line item would oversell its category.
    Carries the units still available so callers can show "only N left".
    """

    def __init__(self, category: str, remaining: int):
        self.category = category
        self.remaining = max(0, remaining)

        if self.remaining == 0:
            message = f"seats full for category: {category}"
        else:
            message = f"only {self.remaining} seats available for: {category}"
        super().__init__(message)


class InvalidStateTransitionError(MarketplaceError):
    """
    Raised when an illegal status transition is attempted.
    """

    def __init__(self, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state

        message = (
            f"Illegal state transition attempted: "
            f"{from_state} -> {to_state}"
        )
        super().__init__(message)


class DiscountError(MarketplaceError):
    """
    Base for coupon and offer rejections.
    Swallowed by the booking pipeline, surfaced only on explicit pre-validation.
    """


class CouponNotFoundError(DiscountError, NotFoundError):
    def __init__(self, code: str):
        self.code = code
        super().__init__("invalid coupon code")


class InactiveError(DiscountError):
    def __init__(self):
        super().__init__("coupon is not active")


class NotYetValidError(DiscountError):
    def __init__(self):
        super().__init__("coupon is not yet valid")


class ExpiredError(DiscountError):
    def __init__(self):
        super().__init__("coupon has expired")


class ExhaustedError(DiscountError):
    def __init__(self):
        super().__init__("coupon usage limit reached")


class RestrictedRequiresIdentityError(DiscountError):
    def __init__(self):
        super().__init__("this coupon is restricted and requires a logged-in user")


class NotEligibleError(DiscountError):
    """Raised when the buyer or the booking vertical is outside the coupon's scope."""


class OfferNotApplicableError(DiscountError):
    """Raised when a promotional offer cannot discount the given item."""
