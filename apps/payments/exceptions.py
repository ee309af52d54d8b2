"""
Client-side exceptions for the UPI payment flow.

Every exception carries a ``message`` fit to show the user as-is.
"""


class PaymentsError(Exception):
    """Base exception for payment flow errors."""

    default_message = 'Something went wrong. Please try again.'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class UpiValidationError(PaymentsError):
    """Raised when payment form input or a deep-link field is invalid."""

    default_message = 'Please check the payment details.'


class PaymentNetworkError(PaymentsError):
    """Raised when an expense API call fails or returns a server error."""

    default_message = 'Could not reach server. Please try again.'


class PendingExpenseNotFoundError(PaymentsError):
    """Raised when the server does not know the pending expense id."""

    default_message = 'This payment could not be found. Add it manually if it went through.'


class SessionStateError(PaymentsError):
    """Raised when an operation is not allowed in the current session state."""

    default_message = 'A payment is already in progress.'
