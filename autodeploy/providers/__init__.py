from .base import (
    CredentialCheck,
    DeployRequest,
    ProviderAdapter,
    ProviderStatus,
    RepositoryRef,
    StrategyOutcome,
    StrategyResult,
    is_demo_secret,
    slugify,
)
from .netlify import NetlifyAdapter
from .registry import default_adapters, get_adapter, list_providers
from .vercel import VercelAdapter

__all__ = [
    "CredentialCheck",
    "DeployRequest",
    "NetlifyAdapter",
    "ProviderAdapter",
    "ProviderStatus",
    "RepositoryRef",
    "StrategyOutcome",
    "StrategyResult",
    "VercelAdapter",
    "default_adapters",
    "get_adapter",
    "is_demo_secret",
    "list_providers",
    "slugify",
]
