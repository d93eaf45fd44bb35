from django.core.exceptions import ValidationError


class PostingError(Exception):
    """Raised when a ledger transaction cannot be posted. Nothing is persisted."""
    pass


class AccountResolutionError(PostingError):
    """Raised when an account cannot be found or created in the chart."""
    pass


class UnbalancedPostingError(PostingError):
    """Raised when total debits and total credits differ."""
    pass


class InvalidTransitionError(ValidationError):
    """Raised for a status change the request lifecycle does not allow."""
    pass


class PersistenceError(Exception):
    """Raised when a record could not be written after its posting succeeded."""

    def __init__(self, message, transaction_id=None):
        super().__init__(message)
        # posted transaction left without an expense, if any
        self.transaction_id = transaction_id


class ConversionPartialFailure(Exception):
    """Raised when a conversion finished with item errors or no expenses."""

    def __init__(self, errors, message=None):
        self.errors = list(errors)
        if message is None:
            titles = ", ".join(e.item_title for e in self.errors) or "no items"
            message = f"Conversion failed for: {titles}"
        super().__init__(message)
