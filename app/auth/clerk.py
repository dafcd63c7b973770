"""
Clerk session token verification.

Clerk signs session JWTs with RS256; the public keys come from the
Clerk JWKS endpoint and are cached here until a token presents a kid we
have not seen, at most once per refresh interval.
"""

import asyncio
import logging
import time
from typing import Any, Dict, Optional

import httpx
import jwt

from app.core.exceptions import InvalidTokenError

logger = logging.getLogger(__name__)

JWKS_REFRESH_SECONDS = 3600
CLOCK_SKEW_SECONDS = 5


class ClerkTokenVerifier:
    """Verifies Clerk session tokens and returns the Clerk user ID."""

    def __init__(
        self,
        jwks_url: str,
        secret_key: str = "",
        issuer: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.jwks_url = jwks_url
        self.secret_key = secret_key
        self.issuer = issuer
        self._http_client = http_client
        self._keys: Dict[str, Any] = {}
        self._fetched_at = 0.0
        self._lock = asyncio.Lock()

    async def verify(self, token: str) -> str:
        """
        Verify a session token.

        Returns:
            The token subject (Clerk user ID)

        Raises:
            InvalidTokenError: If the token is malformed, expired or badly signed
        """
        try:
            header = jwt.get_unverified_header(token)
        except jwt.PyJWTError as e:
            raise InvalidTokenError(f"Malformed token: {e}")

        key = await self._get_key(header.get("kid"))

        try:
            claims = jwt.decode(
                token,
                key,
                algorithms=["RS256"],
                issuer=self.issuer,
                leeway=CLOCK_SKEW_SECONDS,
                options={"require": ["exp", "sub"], "verify_aud": False},
            )
        except jwt.ExpiredSignatureError:
            raise InvalidTokenError("Token has expired")
        except jwt.PyJWTError as e:
            raise InvalidTokenError(f"Invalid token: {e}")

        return claims["sub"]

    async def _get_key(self, kid: Optional[str]) -> Any:
        if not kid:
            raise InvalidTokenError("Token has no key ID")

        if kid not in self._keys:
            await self._refresh_keys()

        key = self._keys.get(kid)
        if key is None:
            raise InvalidTokenError("Unknown signing key")
        return key

    async def _refresh_keys(self) -> None:
        async with self._lock:
            if self._keys and time.monotonic() - self._fetched_at < JWKS_REFRESH_SECONDS:
                return

            headers = {}
            if self.secret_key:
                headers["Authorization"] = f"Bearer {self.secret_key}"

            try:
                if self._http_client is not None:
                    response = await self._http_client.get(self.jwks_url, headers=headers, timeout=10.0)
                else:
                    async with httpx.AsyncClient() as client:
                        response = await client.get(self.jwks_url, headers=headers, timeout=10.0)
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.error(f"[ClerkTokenVerifier] JWKS fetch failed: {e}")
                raise InvalidTokenError("Unable to fetch signing keys")

            keys = {}
            for jwk in response.json().get("keys", []):
                try:
                    keys[jwk["kid"]] = jwt.PyJWK(jwk).key
                except (KeyError, jwt.PyJWTError) as e:
                    logger.warning(f"[ClerkTokenVerifier] Skipping unusable JWK: {e}")

            self._keys = keys
            self._fetched_at = time.monotonic()
            logger.info(f"[ClerkTokenVerifier] Loaded {len(keys)} signing key(s)")
