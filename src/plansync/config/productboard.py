"""ProductBoard configuration values."""

from __future__ import annotations

from dataclasses import dataclass

from .env import env_flag, require_env_vars
from .http_resilience import CacheConfig, RateLimit, ResilienceConfig

PRODUCTBOARD_BASE_URL = "https://api.productboard.com"
PRODUCTBOARD_API_VERSION = "1"
PRODUCTBOARD_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True)
class ProductBoardConfig:
    """Holds ProductBoard API configuration values."""

    api_token: str
    resilience: ResilienceConfig
    link_initiatives: bool = True
    include_integrations: bool = False


def default_productboard_resilience(api_token: str) -> ResilienceConfig:
    return ResilienceConfig(
        name="productboard",
        base_url=PRODUCTBOARD_BASE_URL,
        timeout_seconds=PRODUCTBOARD_TIMEOUT_SECONDS,
        ratelimit=RateLimit(max_calls=50, per_seconds=1.0),
        cache=CacheConfig(enabled=False),
        default_headers={
            "Authorization": f"Bearer {api_token}",
            "X-Version": PRODUCTBOARD_API_VERSION,
            "Accept": "application/json",
        },
    )


def get_productboard_config(*, resilience: ResilienceConfig | None = None) -> ProductBoardConfig:
    values = require_env_vars(("PRODUCTBOARD_API_TOKEN",))
    token = values["PRODUCTBOARD_API_TOKEN"]
    return ProductBoardConfig(
        api_token=token,
        resilience=resilience or default_productboard_resilience(token),
        link_initiatives=env_flag("PRODUCTBOARD_LINK_INITIATIVES", True),
        include_integrations=env_flag("PRODUCTBOARD_INCLUDE_INTEGRATIONS", False),
    )
