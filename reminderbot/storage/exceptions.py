"""Persistence exceptions."""


class PersistenceError(Exception):
    """Raised when a store operation fails; the transaction has been rolled back."""

    def __init__(self, message: str, operation: str = ""):
        super().__init__(message)
        self.message = message
        self.operation = operation
