"""Exceptions raised by playback backends."""


class BackendError(Exception):
    """A collaborator call failed (network loss, malformed payload, storage error)."""

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class VideoNotFound(BackendError):
    """The requested video does not exist or was removed."""


class PurchaseError(BackendError):
    """A purchase was rejected."""


class InsufficientFunds(PurchaseError):
    """The viewer's balance does not cover the price."""

    def __init__(self, balance, price):
        super().__init__(f"Insufficient balance ({balance} < {price})")
        self.balance = balance
        self.price = price
