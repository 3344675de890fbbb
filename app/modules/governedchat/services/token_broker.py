"""
Token Broker
Exchanges the caller's bearer token for the delegated and application tokens
the policy service needs.

Both legs talk to the identity provider's OAuth 2.0 token endpoint directly:
  1. on-behalf-of (jwt-bearer grant) for a delegated token on the policy API
  2. client credentials for an app-only token, against the tenant named in
     the delegated token (``tid`` claim), never a statically configured one
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
import jwt

from app.modules.governedchat.errors import AuthError, TokenAcquisitionError
from core.config import Settings
from core.utils.perf import profile_stage

logger = logging.getLogger(__name__)

OBO_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:jwt-bearer"


@dataclass(frozen=True)
class PurviewTokens:
    obo_token: str
    app_token: str
    user_name: str


def extract_bearer_token(authorization_header: Optional[str]) -> str:
    """Return the token part of a ``Bearer <token>`` header or raise AuthError."""
    if not authorization_header or not authorization_header.startswith("Bearer "):
        raise AuthError("Missing or invalid Authorization header")
    token = authorization_header[len("Bearer "):].strip()
    if not token:
        raise AuthError("Missing or invalid Authorization header")
    return token


def decode_jwt_claims(token: str) -> Dict[str, Any]:
    """Read the (unverified) claims of a JWT; the identity provider already validated it."""
    try:
        return jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError as e:
        logger.warning(f"Could not decode token claims: {e}")
        return {}


class TokenBroker:
    """Stateless per call: nothing is cached at this layer."""

    def __init__(self, config: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._client = http_client or httpx.AsyncClient(timeout=config.TOKEN_BROKER_TIMEOUT_SECS)

    def _token_url(self, tenant: str) -> str:
        authority = self.config.AZURE_AD_AUTHORITY_HOST.rstrip("/")
        return f"{authority}/{tenant}/oauth2/v2.0/token"

    async def _request_token(self, tenant: str, form: Dict[str, str], leg: str) -> Dict[str, Any]:
        form = {
            "client_id": self.config.AZURE_AD_API_ID,
            "client_secret": self.config.AZURE_AD_API_SECRET,
            **form,
        }
        try:
            response = await self._client.post(self._token_url(tenant), data=form)
        except httpx.HTTPError as e:
            logger.error(f"{leg} token request failed: {e}")
            raise TokenAcquisitionError(f"{leg} token request failed") from e

        if response.status_code != 200:
            # error_description is safe to log, the body never echoes secrets
            try:
                description = response.json().get("error_description", "")
            except ValueError:
                description = ""
            logger.error(f"{leg} returned {response.status_code}: {description}")
            raise TokenAcquisitionError(f"Failed to acquire token using {leg} flow")

        try:
            body = response.json()
        except ValueError as e:
            logger.error(f"{leg} returned a non-JSON body")
            raise TokenAcquisitionError(f"Failed to acquire token using {leg} flow") from e
        if not isinstance(body, dict) or not body.get("access_token"):
            logger.error(f"{leg} returned empty token")
            raise TokenAcquisitionError(f"Failed to acquire token using {leg} flow")
        return body

    @profile_stage("token_broker")
    async def acquire_tokens(self, user_bearer_token: str) -> PurviewTokens:
        if not user_bearer_token:
            raise AuthError("Missing bearer token")

        obo = await self._request_token(
            self.config.AZURE_AD_TENANT_ID,
            {
                "grant_type": OBO_GRANT_TYPE,
                "assertion": user_bearer_token,
                "requested_token_use": "on_behalf_of",
                "scope": " ".join(self.config.graph_scopes),
            },
            leg="OBO",
        )
        obo_token = obo["access_token"]
        claims = decode_jwt_claims(obo_token)
        tenant_id = claims.get("tid")
        if not tenant_id:
            logger.error("OBO token carries no tenant id")
            raise TokenAcquisitionError("OBO token carries no tenant id")

        app = await self._request_token(
            tenant_id,
            {
                "grant_type": "client_credentials",
                "scope": self.config.AZURE_AD_APP_SCOPE,
            },
            leg="Client cred",
        )

        return PurviewTokens(
            obo_token=obo_token,
            app_token=app["access_token"],
            user_name=claims.get("preferred_username") or claims.get("upn") or "",
        )

    async def aclose(self) -> None:
        await self._client.aclose()
