"""
Token Service — Automatic OAuth token refresh for Amazon Ads.
Checks token expiry before every MCP call and refreshes if needed.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
import httpx
from kdp_ads.config import Settings
from kdp_ads.mcp_client import create_mcp_client, AmazonAdsMCP

logger = logging.getLogger(__name__)

TOKEN_URL = "https://api.amazon.com/auth/o2/token"

# Refresh 5 minutes before actual expiry to avoid race conditions
REFRESH_BUFFER = timedelta(minutes=5)


async def refresh_access_token(
    client_id: str,
    client_secret: str,
    refresh_token: str,
) -> dict:
    """
    Exchange a refresh token for a new access token via Amazon LwA.
    Returns dict with access_token, expires_in, token_type.
    """
    async with httpx.AsyncClient() as client:
        response = await client.post(
            TOKEN_URL,
            data={
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": client_id,
                "client_secret": client_secret,
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=30,
        )
        response.raise_for_status()
        return response.json()


class TokenManager:
    """
    Holds the Amazon Ads access token for this process and refreshes it
    through LwA when it is about to expire. Without a client secret and
    refresh token the configured access token is used as-is.
    """

    def __init__(
        self,
        client_id: str,
        access_token: str,
        client_secret: Optional[str] = None,
        refresh_token: Optional[str] = None,
        region: str = "na",
        profile_id: Optional[str] = None,
    ):
        self.client_id = client_id
        self.access_token = access_token
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.region = region
        self.profile_id = profile_id
        self.expires_at: Optional[datetime] = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenManager":
        return cls(
            client_id=settings.amazon_ads_client_id,
            access_token=settings.amazon_ads_access_token,
            client_secret=settings.amazon_ads_client_secret or None,
            refresh_token=settings.amazon_ads_refresh_token or None,
            region=settings.amazon_ads_region,
            profile_id=settings.amazon_ads_profile_id or None,
        )

    @property
    def can_refresh(self) -> bool:
        return bool(self.client_secret and self.refresh_token)

    def token_is_expired(self) -> bool:
        """Check if the access token is expired or about to expire."""
        if not self.expires_at:
            # No expiry tracked yet: refresh once if we can
            return self.can_refresh
        return datetime.now(timezone.utc) >= (self.expires_at - REFRESH_BUFFER)

    async def ensure_fresh_token(self) -> str:
        if not self.can_refresh:
            return self.access_token

        async with self._lock:
            if not self.token_is_expired():
                return self.access_token

            logger.info("Amazon Ads access token expired, refreshing...")
            try:
                token_data = await refresh_access_token(
                    client_id=self.client_id,
                    client_secret=self.client_secret,
                    refresh_token=self.refresh_token,
                )
            except httpx.HTTPStatusError as e:
                logger.error(f"Token refresh failed: {e.response.status_code} — {e.response.text}")
                raise

            self.access_token = token_data["access_token"]
            expires_in = token_data.get("expires_in", 3600)
            self.expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
            # If Amazon returned a new refresh token, keep it
            if "refresh_token" in token_data:
                self.refresh_token = token_data["refresh_token"]
            logger.info(f"Token refreshed, expires in {expires_in}s")
            return self.access_token

    async def get_mcp_client(self) -> AmazonAdsMCP:
        """
        Get an MCP client with a guaranteed fresh access token.
        This is the main entry point — use this instead of create_mcp_client directly.
        """
        access_token = await self.ensure_fresh_token()
        return create_mcp_client(
            client_id=self.client_id,
            access_token=access_token,
            region=self.region,
            profile_id=self.profile_id,
        )
