"""Service-layer exceptions.

These are raised by services and translated to HTTP status codes by the
API layer. Provider failures live in ``integrations.exceptions``.
"""


class ServiceError(Exception):
    """Base exception for service-layer errors."""

    pass


class UnauthorizedError(ServiceError):
    """Caller identity is missing, malformed, expired or unknown."""

    pass


class InvalidCredentialsError(ServiceError):
    """Email/password pair does not match a registered user."""

    pass


class InvalidInputError(ServiceError):
    """Request input failed validation before any I/O was attempted."""

    pass


class DuplicateUserError(ServiceError):
    """A user with this email is already registered."""

    pass


class DuplicateLinkError(ServiceError):
    """The caller already has a linked account for this institution."""

    def __init__(self, institution_name: str):
        self.institution_name = institution_name
        super().__init__(f"{institution_name} is already linked")


class InsufficientDataError(ServiceError):
    """Too few transactions to derive any insight."""

    pass


class NotFoundError(ServiceError):
    """The requested entity does not exist or belongs to another user."""

    pass


class WebhookVerificationError(ServiceError):
    """A webhook request is unsigned or its signature does not check out."""

    pass
