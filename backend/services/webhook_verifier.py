"""Plaid webhook signature verification.

Plaid signs every webhook with an ES256 JWT sent in the ``Plaid-Verification``
header. The JWT header names the signing key (``kid``), which is fetched from
Plaid; the JWT claims carry the SHA-256 of the request body and the time it
was issued.
"""

import hashlib
import hmac
import json
import logging
import time

import jwt
from jwt.algorithms import ECAlgorithm

from integrations.exceptions import ProviderError
from integrations.provider_protocol import ProviderClient
from services.exceptions import WebhookVerificationError

logger = logging.getLogger(__name__)

SIGNING_ALGORITHM = "ES256"
MAX_TOKEN_AGE_SECONDS = 300


class PlaidWebhookVerifier:
    """Checks a webhook body against its ``Plaid-Verification`` JWT."""

    def __init__(self, client: ProviderClient):
        self._client = client

    def verify(self, body: bytes, signed_jwt: str | None, now: float | None = None) -> None:
        """Verify a webhook request.

        Args:
            body: Raw request body, exactly as received.
            signed_jwt: Value of the ``Plaid-Verification`` header.
            now: Current Unix time (defaults to ``time.time()``).

        Raises:
            WebhookVerificationError: Missing, malformed, stale or forged
                signature, or the signing key could not be fetched.
        """
        if not signed_jwt:
            raise WebhookVerificationError("Missing Plaid-Verification header")

        try:
            header = jwt.get_unverified_header(signed_jwt)
        except jwt.InvalidTokenError as e:
            raise WebhookVerificationError(f"Malformed webhook signature: {e}") from e

        if header.get("alg") != SIGNING_ALGORITHM:
            raise WebhookVerificationError(f"Unexpected signing algorithm {header.get('alg')!r}")
        key_id = header.get("kid")
        if not key_id:
            raise WebhookVerificationError("No key id in webhook signature")

        public_key = self._public_key(key_id)

        try:
            claims = jwt.decode(
                signed_jwt,
                public_key,
                algorithms=[SIGNING_ALGORITHM],
                options={"require": ["iat"]},
            )
        except jwt.InvalidTokenError as e:
            raise WebhookVerificationError(f"Invalid webhook signature: {e}") from e

        now = time.time() if now is None else now
        if now - claims["iat"] > MAX_TOKEN_AGE_SECONDS:
            raise WebhookVerificationError("Webhook signature is too old")

        body_hash = hashlib.sha256(body).hexdigest()
        claimed = str(claims.get("request_body_sha256", ""))
        if not hmac.compare_digest(body_hash, claimed):
            raise WebhookVerificationError("Webhook body hash mismatch")

    def _public_key(self, key_id: str):
        try:
            jwk = self._client.get_webhook_verification_key(key_id)
        except ProviderError as e:
            logger.warning("Could not fetch webhook verification key %s: %s", key_id, e)
            raise WebhookVerificationError("Unknown webhook verification key") from e

        if jwk.get("expired_at"):
            raise WebhookVerificationError(f"Webhook verification key {key_id} has expired")

        try:
            return ECAlgorithm.from_jwk(
                json.dumps({k: jwk.get(k) for k in ("kty", "crv", "x", "y")})
            )
        except (jwt.InvalidKeyError, TypeError, ValueError) as e:
            raise WebhookVerificationError(f"Unusable webhook verification key: {e}") from e
