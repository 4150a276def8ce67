"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.
"""


class ServiceError(Exception):
    """Base exception for all account and payment errors."""

    pass


class ValidationError(ServiceError):
    """Raised when caller input is missing or malformed."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Validation error: {message}")


class AuthenticationError(ServiceError):
    """Raised when a webhook signature or an access token cannot be verified."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Authentication failed: {message}")


class AccountExistsError(ServiceError):
    """Raised when signing up with an email that already has an account."""

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__(f"Account already exists: {email}")


class UpstreamError(ServiceError):
    """Raised when a payment provider call fails. Never retried locally."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Payment provider error: {message}")
