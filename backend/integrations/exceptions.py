"""Typed exception hierarchy for provider errors.

Provides structured exceptions for differentiated error handling:
a rejected credential must be re-linked, an unavailable provider may be
retried by the caller.
"""


class ProviderError(Exception):
    """Base exception for all provider-related errors.

    Carries the provider name so callers can identify which provider failed.
    """

    retriable = False

    def __init__(self, message: str, provider_name: str = ""):
        self.provider_name = provider_name
        super().__init__(message)


class ProviderNotConfiguredError(ProviderError):
    """Provider credentials are missing from the configuration."""

    pass


class ProviderRejectedError(ProviderError):
    """The token itself is invalid, expired, revoked or already used.

    Not retriable: the caller must run the linking flow again.
    """

    def __init__(self, message: str, provider_name: str = "", error_code: str = ""):
        self.error_code = error_code
        super().__init__(message, provider_name)


class ProviderUnavailableError(ProviderError):
    """Network failures, timeouts, rate limiting and provider outages.

    Retriable by default.
    """

    def __init__(self, message: str, provider_name: str = "", retriable: bool = True):
        self.retriable = retriable
        super().__init__(message, provider_name)


class ProviderAPIError(ProviderError):
    """HTTP 4xx/5xx responses from the provider API."""

    def __init__(
        self,
        message: str,
        provider_name: str = "",
        status_code: int | None = None,
        error_code: str = "",
    ):
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(message, provider_name)

    @property
    def retriable(self) -> bool:
        """429 (rate limit) and 5xx errors are generally retriable."""
        if self.status_code is None:
            return False
        return self.status_code == 429 or self.status_code >= 500


class ProviderDataError(ProviderError):
    """Malformed or unparseable response from the provider."""

    pass
