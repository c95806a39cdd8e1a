#!/usr/bin/env python3
"""Credential setup for the North API.

Validates Plaid API credentials by creating a Link token through the same
client the service uses, then generates the JWT signing secret and the
access-token encryption key if they are not configured yet.

Usage:
    1. Sign up at https://dashboard.plaid.com/ and copy client_id and secret
    2. Run this script and follow the prompts
    3. Add the printed values to your .env file, or store them in the keychain
"""

import secrets
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import settings
from integrations.exceptions import ProviderError
from integrations.plaid_client import PlaidClient
from services.token_cipher import TokenCipher

ENVIRONMENT_CHOICES = {"1": "sandbox", "2": "production"}


def _offer_keychain_store(credentials: dict[str, str]) -> None:
    """Prompt the user to store credentials in the OS keychain."""
    from services.credential_manager import set_credential

    answer = input("\nStore these values in the OS keychain? [Y/n] ").strip().lower()
    if answer in ("", "y", "yes"):
        for key, value in credentials.items():
            if set_credential(key, value):
                print(f"  Stored {key} in keychain")
            else:
                print(f"  Failed to store {key}")
    else:
        print("  Skipped keychain storage.")


def validate_credentials(client_id: str, secret: str, env: str) -> str:
    """Validate Plaid credentials by creating a test link token.

    Returns:
        The link token Plaid issued.

    Raises:
        ProviderError: If Plaid rejects the credentials or is unreachable.
    """
    client = PlaidClient(client_id=client_id, secret=secret, environment=env)
    token = client.create_link_token("setup-test", country_codes=["US"])
    if not token.link_token:
        raise ProviderError("No link_token in response", provider_name=client.provider_name)
    return token.link_token


def generated_secrets() -> dict[str, str]:
    """New values for the signing secret and encryption key when unset."""
    values = {}
    if not settings.JWT_SECRET:
        values["JWT_SECRET"] = secrets.token_urlsafe(48)
    if not settings.TOKEN_ENCRYPTION_KEY:
        values["TOKEN_ENCRYPTION_KEY"] = TokenCipher.generate_key()
    return values


def main():
    """Prompt for credentials and validate them."""
    print("North API Setup")
    print("=" * 50)
    print()
    print("To get Plaid API credentials:")
    print("  1. Sign up at https://dashboard.plaid.com/")
    print("  2. Go to Developers > Keys")
    print("  3. Copy your client_id and secret")
    print()

    client_id = input("Enter your Plaid client_id: ").strip()
    if not client_id:
        print("Error: No client_id provided")
        sys.exit(1)

    secret = input("Enter your Plaid secret: ").strip()
    if not secret:
        print("Error: No secret provided")
        sys.exit(1)

    print()
    print("Choose environment:")
    print("  1. sandbox (for testing with fake data)")
    print("  2. production (for live use)")
    env_choice = input("Enter choice (1 or 2) [1]: ").strip() or "1"
    env = ENVIRONMENT_CHOICES.get(env_choice, "sandbox")

    print()
    print(f"Validating credentials against {env} environment...")

    try:
        validate_credentials(client_id, secret, env)
    except ProviderError as e:
        print(f"Error: {e}")
        print()
        print("Common issues:")
        print("  - Incorrect client_id or secret")
        print("  - Keys do not belong to the selected environment")
        sys.exit(1)

    values = {"PLAID_CLIENT_ID": client_id, "PLAID_SECRET": secret}
    values.update(generated_secrets())

    print()
    print("Success! Add the following to your .env file:")
    print()
    for key, value in values.items():
        print(f"{key}={value}")
    print(f"PLAID_ENVIRONMENT={env}")

    _offer_keychain_store(values)

    print()
    print("Keep TOKEN_ENCRYPTION_KEY safe: stored access tokens cannot be")
    print("decrypted without it.")


if __name__ == "__main__":
    main()
