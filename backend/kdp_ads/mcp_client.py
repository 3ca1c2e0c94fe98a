"""
Amazon Ads MCP Client
Connects to the official Amazon Ads MCP Server via Streamable HTTP transport.
Used to push approved campaign/keyword changes to Amazon Ads.
"""

import json
import logging
from typing import Any, Optional
from mcp.client.streamable_http import streamablehttp_client
from mcp import ClientSession

logger = logging.getLogger(__name__)

# ── Region URL Mapping ────────────────────────────────────────────────
REGION_URLS = {
    "na": "https://advertising-ai.amazon.com/mcp",
    "eu": "https://advertising-ai-eu.amazon.com/mcp",
    "fe": "https://advertising-ai-fe.amazon.com/mcp",
}

AD_PRODUCT = "SPONSORED_PRODUCTS"


class AmazonAdsMCP:
    """
    Wrapper around the Amazon Ads MCP Server.
    Each instance is configured with credentials and can call any MCP tool.
    """

    def __init__(
        self,
        client_id: str,
        access_token: str,
        region: str = "na",
        profile_id: Optional[str] = None,
    ):
        self.client_id = client_id
        self.access_token = access_token
        self.region = region.lower()
        self.profile_id = profile_id

    @property
    def url(self) -> str:
        url = REGION_URLS.get(self.region)
        if not url:
            raise ValueError(f"Unsupported region: {self.region}. Use na, eu, or fe.")
        return url

    @property
    def headers(self) -> dict[str, str]:
        h = {
            "Amazon-Ads-ClientId": self.client_id,
            "Authorization": f"Bearer {self.access_token}",
            "Accept": "application/json, text/event-stream",
        }
        if self.profile_id:
            h["Amazon-Advertising-API-Scope"] = self.profile_id
            h["Amazon-Ads-AI-Account-Selection-Mode"] = "FIXED"
        return h

    async def call_tool(self, tool_name: str, arguments: dict[str, Any] = None) -> dict:
        """Call a single MCP tool and return the result."""
        if arguments is None:
            arguments = {}

        logger.info(f"MCP call: {tool_name} with args keys: {list(arguments.keys())}")

        try:
            async with streamablehttp_client(url=self.url, headers=self.headers) as (
                read_stream,
                write_stream,
                _,
            ):
                async with ClientSession(read_stream, write_stream) as session:
                    await session.initialize()
                    result = await session.call_tool(tool_name, arguments)
                    return self._parse_result(result)
        except MCPError:
            raise
        except Exception as e:
            logger.error(f"MCP tool call failed: {tool_name} - {str(e)}")
            raise MCPError(f"Failed to call {tool_name}: {str(e)}")

    # ── Mutations ────────────────────────────────────────────────────

    async def update_target_bids(self, targets: list[dict]) -> dict:
        return await self.call_tool("campaign_management-update_target_bid", {
            "body": {"targets": targets}
        })

    async def update_targets(self, targets: list[dict]) -> dict:
        return await self.call_tool("campaign_management-update_target", {
            "body": {"targets": targets}
        })

    async def update_campaign_budget(self, campaigns: list[dict]) -> dict:
        return await self.call_tool("campaign_management-update_campaign_budget", {
            "body": {"campaigns": campaigns}
        })

    async def create_targets(self, targets: list[dict]) -> dict:
        return await self.call_tool("campaign_management-create_target", {
            "body": {"targets": targets}
        })

    # ── Helpers ───────────────────────────────────────────────────────

    @staticmethod
    def _parse_result(result) -> dict:
        """Parse MCP tool result into a clean dict. Tool-level errors raise MCPError."""
        if hasattr(result, "content"):
            content_parts = []
            for part in result.content:
                if hasattr(part, "text"):
                    content_parts.append(part.text)
                elif hasattr(part, "data"):
                    content_parts.append(part.data)
            if getattr(result, "isError", False):
                detail = " ".join(str(p) for p in content_parts) or "unknown error"
                raise MCPError(f"MCP tool error: {detail[:500]}")
            if len(content_parts) == 1:
                try:
                    return json.loads(content_parts[0])
                except (json.JSONDecodeError, TypeError):
                    text = content_parts[0]
                    logger.warning(f"MCP response not valid JSON: {text[:500]}")
                    # Detect validation errors and raise so callers get a clear message
                    if "Validation failed" in text or "Validation error" in text:
                        raise MCPError(f"MCP validation error: {text[:500]}")
                    return {"result": text}
            logger.info(f"MCP response has {len(content_parts)} content parts")
            return {"result": content_parts}
        return {"result": str(result)}


class MCPError(Exception):
    """Custom exception for MCP-related errors."""
    pass


def create_mcp_client(
    client_id: str,
    access_token: str,
    region: str = "na",
    profile_id: str = None,
) -> AmazonAdsMCP:
    """Factory function to create an MCP client instance."""
    return AmazonAdsMCP(
        client_id=client_id,
        access_token=access_token,
        region=region,
        profile_id=profile_id,
    )
