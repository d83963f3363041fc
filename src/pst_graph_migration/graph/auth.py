"""Microsoft Graph app-only authentication helpers."""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

import msal

from pst_graph_migration.config.settings import GraphSettings

logger = logging.getLogger(__name__)

GRAPH_SCOPES: list[str] = ["https://graph.microsoft.com/.default"]


class GraphAuthError(RuntimeError):
    """Raised when an access token cannot be acquired."""


class TokenProvider(Protocol):
    """Source of bearer tokens for Graph requests."""

    async def token(self) -> str:
        """Return a valid access token."""
        ...


class StaticTokenProvider:
    """Token provider returning a fixed token (pre-issued tokens, tests)."""

    def __init__(self, token: str) -> None:
        """Initialize the provider.

        Args:
            token: Bearer token to hand out.
        """
        self._token = token

    async def token(self) -> str:
        """Return the configured token."""
        return self._token


class ClientCredentialTokenProvider:
    """Client-credential flow (tenant, client id, client secret) via MSAL.

    MSAL keeps the token in its in-memory cache and only contacts the
    authority again once it is close to expiry.
    """

    def __init__(self, *, settings: GraphSettings) -> None:
        """Initialize the MSAL confidential client.

        Args:
            settings: Graph settings with the app registration.
        """
        self._app = msal.ConfidentialClientApplication(
            settings.client_id,
            authority=f"{settings.authority_host}/{settings.tenant_id}",
            client_credential=settings.client_secret,
        )

    def _acquire(self) -> str:
        """Acquire a token synchronously.

        Returns:
            Access token.

        Raises:
            GraphAuthError: If MSAL returns an error payload.
        """
        result = self._app.acquire_token_for_client(scopes=GRAPH_SCOPES)
        if not isinstance(result, dict) or "access_token" not in result:
            error = result.get("error") if isinstance(result, dict) else None
            description = result.get("error_description") if isinstance(result, dict) else None
            raise GraphAuthError(f"Graph token request failed: {error}: {description}")
        return str(result["access_token"])

    async def token(self) -> str:
        """Return a valid access token without blocking the event loop."""
        return await asyncio.to_thread(self._acquire)
