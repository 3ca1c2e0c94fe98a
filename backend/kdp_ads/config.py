import logging
from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import model_validator, ConfigDict
from functools import lru_cache

from kdp_ads.schemas import ProfitabilityConfig, DEFAULT_BREAK_EVEN_ACOS

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Environment: "development" or "production"
    environment: str = "development"

    database_url: str = "postgresql+asyncpg://localhost/kdp_ads"

    @model_validator(mode="before")
    @classmethod
    def _fix_database_url_for_asyncpg(cls, values: dict) -> dict:
        """Hosted Postgres gives postgresql:// — we need postgresql+asyncpg:// for asyncpg."""
        if not isinstance(values, dict):
            return values
        url = values.get("database_url") or ""
        if url.startswith("postgresql://") and "+asyncpg" not in url:
            values["database_url"] = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return values

    api_key: str = ""  # Required in production; in dev, empty = auth disabled

    # Royalty economics used for profit / break-even calculations
    royalty_per_unit: float = 0.0
    kenp_rate_per_page: Optional[float] = None
    break_even_acos_fallback: float = DEFAULT_BREAK_EVEN_ACOS

    # Amazon Ads MCP access. Leave client id / access token empty to run
    # in record-only mode (approved changes are applied by hand).
    amazon_ads_client_id: str = ""
    amazon_ads_client_secret: str = ""
    amazon_ads_access_token: str = ""
    amazon_ads_refresh_token: str = ""
    amazon_ads_region: str = "na"
    amazon_ads_profile_id: str = ""

    @model_validator(mode="after")
    def _validate_production_settings(self) -> "Settings":
        """Enforce that critical secrets are set when running in production."""
        if self.is_production:
            if not self.api_key:
                raise ValueError(
                    "API_KEY must be set in production. "
                    "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
                )
            if not self.database_url or "localhost" in self.database_url:
                logger.warning("DATABASE_URL appears to point at localhost in production.")
        if self.royalty_per_unit < 0:
            raise ValueError("ROYALTY_PER_UNIT cannot be negative.")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def ads_api_configured(self) -> bool:
        return bool(self.amazon_ads_client_id and self.amazon_ads_access_token)

    @property
    def profitability_config(self) -> ProfitabilityConfig:
        return ProfitabilityConfig(
            royalty_per_unit=self.royalty_per_unit,
            kenp_rate_per_page=self.kenp_rate_per_page,
            break_even_acos_fallback=self.break_even_acos_fallback,
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()
