"""
Error taxonomy for the verification code lifecycle.

Every error carries a ``kind`` (stable name reported to callers), an HTTP
``status_code`` and a ``public_message`` that is safe to show end users.
The constructor message is the internal detail and is only logged, or
exposed when running in development mode.
"""


class VerificationError(Exception):
    kind = "VerificationError"
    status_code = 500
    public_message = "Unable to process verification request."

    def __init__(self, message=None, *, public_message=None):
        super().__init__(message or self.public_message)
        if public_message is not None:
            self.public_message = public_message

    @property
    def detail(self) -> str:
        return str(self)


class ValidationError(VerificationError):
    """Malformed email address or code supplied by the caller."""
    kind = "ValidationError"
    status_code = 400
    public_message = "Invalid request."

    def __init__(self, message=None):
        # Validation messages describe the caller's own input, so they are public
        super().__init__(message, public_message=message or self.public_message)


class InvalidAddressError(VerificationError):
    """Destination address rejected by the mail dispatcher before any send attempt."""
    kind = "InvalidAddressError"
    status_code = 400
    public_message = "Invalid email format"


class ConfigurationError(VerificationError):
    kind = "ConfigurationError"
    status_code = 500
    public_message = "Server configuration error"


class StoreWriteError(VerificationError):
    kind = "StoreWriteError"
    status_code = 500
    public_message = "Failed to store verification code. Please try again later."


class DeliveryError(VerificationError):
    kind = "DeliveryError"
    status_code = 500
    public_message = "Failed to send verification email"


class InvalidOrExpiredCodeError(VerificationError):
    # One kind for wrong, expired and already-used codes
    kind = "InvalidOrExpiredCodeError"
    status_code = 400
    public_message = "Invalid or expired verification code"
