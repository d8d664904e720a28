"""Credential resolution for outbound platform calls.

Every generic tool invocation asks the resolver which credential to attach.
Sources are tried in a fixed order and the first one available wins:

1. configured API key (header, or query parameter in ``query`` mode)
2. configured bearer token
3. configured username/password, exchanged for a token via password grant
   (a failed exchange yields no credential)
4. credentials the MCP caller sent on its own request (passthrough)
5. nothing
"""

import asyncio
import time
from typing import Optional

import httpx
from jose import JWTError, jwt

from shared.config import PlatformSettings
from shared.logging import get_logger
from shared.models import CallCredential, InboundRequest, OutboundRequest

logger = get_logger(__name__)

DEFAULT_TOKEN_LIFETIME_SECONDS = 3600
# Refresh a cached token this long before it actually expires
EXPIRY_MARGIN_SECONDS = 30

PASSTHROUGH_API_KEY = "api_key"


class CredentialResolver:
    """
    Resolves the credential for each outbound call.

    Password grant tokens are cached until shortly before they expire.
    Resolution never raises: a failed exchange resolves to no credential.
    """

    def __init__(
        self,
        settings: PlatformSettings,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.settings = settings
        self._http_client = http_client
        self._token: Optional[str] = None
        self._token_expires_at = 0.0
        self._token_lock = asyncio.Lock()

    async def resolve(
        self,
        request: Optional[OutboundRequest] = None,
        inbound: Optional[InboundRequest] = None,
    ) -> CallCredential:
        """
        Pick the credential for an outbound call.

        Args:
            request: The outbound request about to be sent
            inbound: Headers and query of the triggering MCP request

        Returns:
            The first available credential, or ``CallCredential.none()``
        """
        settings = self.settings

        if settings.api_key:
            if settings.api_key_mode == "query":
                return CallCredential.api_key_query(settings.api_key, settings.api_key_name)
            return CallCredential.api_key_header(settings.api_key, settings.api_key_name)

        if settings.bearer_token:
            return CallCredential.bearer_token(settings.bearer_token)

        if settings.username and settings.password:
            token = await self.get_password_grant_token()
            if token:
                return CallCredential.bearer_token(token)
            # Configured credentials that fail are not replaced by the caller's
            return CallCredential.none()

        if inbound is not None:
            credential = self._passthrough(inbound)
            if credential is not None:
                return credential

        logger.warning(
            "No credentials available for outbound call",
            path=request.path if request is not None else None,
        )
        return CallCredential.none()

    @staticmethod
    def _passthrough(inbound: InboundRequest) -> Optional[CallCredential]:
        api_key = inbound.header(PASSTHROUGH_API_KEY)
        if api_key:
            return CallCredential.passthrough_header(PASSTHROUGH_API_KEY, api_key)

        api_key = inbound.query.get(PASSTHROUGH_API_KEY)
        if api_key:
            return CallCredential.passthrough_header(PASSTHROUGH_API_KEY, api_key)

        authorization = inbound.header("Authorization")
        if authorization:
            return CallCredential.passthrough_header("Authorization", authorization)

        return None

    async def get_password_grant_token(self) -> Optional[str]:
        """Return a cached token or exchange the configured username/password for a new one."""
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        async with self._token_lock:
            # Another task may have refreshed while we waited
            if self._token and time.monotonic() < self._token_expires_at:
                return self._token

            try:
                token, lifetime = await self._exchange_password()
            except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
                logger.warning("Password grant failed", endpoint=self.settings.token_endpoint, error=str(e))
                return None

            self._token = token
            self._token_expires_at = time.monotonic() + max(lifetime - EXPIRY_MARGIN_SECONDS, 0)
            logger.info("Obtained platform access token", expires_in=lifetime)
            return token

    async def _exchange_password(self) -> tuple[str, float]:
        settings = self.settings
        form = {
            "grant_type": "password",
            "username": settings.username or "",
            "password": settings.password or "",
        }
        if settings.client_id:
            form["client_id"] = settings.client_id

        url = f"{settings.base_url.rstrip('/')}/{settings.token_endpoint.lstrip('/')}"
        if self._http_client is not None:
            response = await self._http_client.post(url, data=form)
        else:
            async with httpx.AsyncClient(timeout=settings.timeout_seconds) as client:
                response = await client.post(url, data=form)
        response.raise_for_status()

        payload = response.json()
        token = payload["access_token"]
        if not token:
            raise ValueError("Token endpoint returned an empty access_token")

        return token, self._token_lifetime(token, payload.get("expires_in"))

    @staticmethod
    def _token_lifetime(token: str, expires_in: object) -> float:
        """Seconds until expiry: ``expires_in``, else the JWT ``exp`` claim, else one hour."""
        if isinstance(expires_in, (int, float)) and not isinstance(expires_in, bool) and expires_in > 0:
            return float(expires_in)
        if isinstance(expires_in, str) and expires_in.strip().isdigit():
            return float(expires_in.strip())

        try:
            claims = jwt.get_unverified_claims(token)
        except JWTError:
            return DEFAULT_TOKEN_LIFETIME_SECONDS

        exp = claims.get("exp")
        if isinstance(exp, (int, float)):
            remaining = exp - time.time()
            if remaining > 0:
                return remaining
        return DEFAULT_TOKEN_LIFETIME_SECONDS
