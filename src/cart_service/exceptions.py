"""Domain exceptions."""


class CartTrackerError(Exception):
    """Base class for cart tracking errors."""


class UnknownStatusError(CartTrackerError):
    """A cart status value outside the lifecycle enumeration."""

    def __init__(self, value: object):
        super().__init__(f"Unknown cart status: {value!r}")
        self.value = value
