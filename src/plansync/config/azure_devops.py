"""Azure DevOps configuration values."""

from __future__ import annotations

import base64
from dataclasses import dataclass
from urllib.parse import quote

from .env import require_env_vars
from .http_resilience import CacheConfig, RateLimit, ResilienceConfig

AZURE_DEVOPS_HOST = "https://dev.azure.com"
AZURE_DEVOPS_API_VERSION = "7.0"
AZURE_DEVOPS_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True)
class AzureDevOpsConfig:
    """Holds Azure DevOps API configuration values."""

    organization: str
    project: str
    personal_access_token: str
    resilience: ResilienceConfig

    @property
    def project_url(self) -> str:
        return project_base_url(self.organization, self.project)


def project_base_url(organization: str, project: str) -> str:
    return f"{AZURE_DEVOPS_HOST}/{quote(organization)}/{quote(project)}/"


def default_azure_devops_resilience(
    organization: str, project: str, personal_access_token: str
) -> ResilienceConfig:
    credentials = base64.b64encode(f":{personal_access_token}".encode()).decode("ascii")
    return ResilienceConfig(
        name="azure-devops",
        base_url=project_base_url(organization, project),
        timeout_seconds=AZURE_DEVOPS_TIMEOUT_SECONDS,
        ratelimit=RateLimit(max_calls=20, per_seconds=1.0),
        cache=CacheConfig(enabled=False),
        default_headers={
            "Authorization": f"Basic {credentials}",
            "Accept": "application/json",
        },
    )


def get_azure_devops_config(*, resilience: ResilienceConfig | None = None) -> AzureDevOpsConfig:
    values = require_env_vars(("AZURE_DEVOPS_ORG", "AZURE_DEVOPS_PROJECT", "AZURE_DEVOPS_PAT"))
    organization = values["AZURE_DEVOPS_ORG"]
    project = values["AZURE_DEVOPS_PROJECT"]
    token = values["AZURE_DEVOPS_PAT"]
    return AzureDevOpsConfig(
        organization=organization,
        project=project,
        personal_access_token=token,
        resilience=resilience or default_azure_devops_resilience(organization, project, token),
    )
