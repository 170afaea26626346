"""Exception hierarchy for imagetest."""


class ImagetestError(Exception):
    """Base class for all imagetest errors."""

    pass


class EncodeError(ImagetestError):
    """Raised when an inventory seed cannot be encoded."""

    pass


class InventoryError(ImagetestError):
    """Raised when the inventory backing store fails."""

    pass


class InvalidInputError(ImagetestError, ValueError):
    """Raised when a harness or feature declares an invalid input.

    Covers malformed image references, unresolvable mount sources and
    malformed mirror endpoint lists.
    """

    pass


class HarnessNotFoundError(ImagetestError):
    """Raised when no live handle is registered for a harness identifier.

    Dependent features only reach this when harnesses and features were
    evaluated out of order, so it is a configuration error.
    """

    def __init__(self, harness_id: str) -> None:
        self.harness_id = harness_id
        super().__init__(
            f"harness [{harness_id}] has no running instance in this process; "
            "features must depend on their harness"
        )


class HarnessSetupError(ImagetestError):
    """Raised when a harness setup operation fails."""

    pass


class HarnessTimeoutError(HarnessSetupError):
    """Raised when a harness setup deadline expires."""

    pass
