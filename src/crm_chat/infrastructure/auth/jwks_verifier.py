from __future__ import annotations

import logging

import jwt
from jwt import PyJWKClient

from crm_chat.application.dto.principal import Principal
from crm_chat.infrastructure.auth.claims import principal_from_claims

logger = logging.getLogger(__name__)


class JWKSVerifier:
    """Verify session JWTs using the identity provider's JWKS endpoint."""

    def __init__(self, jwks_url: str) -> None:
        self._jwks_url = jwks_url
        self._jwk_client = PyJWKClient(jwks_url)

    async def verify(self, token: str) -> Principal:
        signing_key = self._jwk_client.get_signing_key_from_jwt(token)
        payload = jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256", "ES256"],
        )
        principal = principal_from_claims(payload)
        logger.debug("Verified %s via %s", principal.id, self._jwks_url)
        return principal
