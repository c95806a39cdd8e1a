"""External API integrations.

This package contains:
- Provider protocol: Common interface and result types for bank-linking providers
- Provider exceptions: Typed failures every provider client raises
- Plaid client: Integration with the Plaid API
"""

from integrations.provider_protocol import (
    ErrorCategory,
    ProviderAccount,
    ProviderClient,
    ProviderExchangeResult,
    ProviderTransaction,
)

__all__ = [
    "ErrorCategory",
    "ProviderAccount",
    "ProviderClient",
    "ProviderExchangeResult",
    "ProviderTransaction",
]
