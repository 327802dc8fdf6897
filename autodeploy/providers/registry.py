"""
Registry of provider adapters.
"""

import logging
from typing import Dict, List, Optional

from autodeploy.errors import ValidationError

from .base import ProviderAdapter
from .netlify import NetlifyAdapter
from .vercel import VercelAdapter

logger = logging.getLogger(__name__)


ADAPTER_CLASSES = {
    "vercel": VercelAdapter,
    "netlify": NetlifyAdapter,
}


def default_adapters(timeout: Optional[float] = None) -> Dict[str, ProviderAdapter]:
    """Fresh adapter instances for every registered provider."""
    return {name: cls(timeout=timeout) for name, cls in ADAPTER_CLASSES.items()}


def get_adapter(adapters: Dict[str, ProviderAdapter], provider: str) -> ProviderAdapter:
    """
    Look a provider up by id.

    Raises:
        ValidationError: If no adapter is registered for it
    """
    adapter = adapters.get((provider or "").lower())
    if adapter is None:
        raise ValidationError(f"Unsupported provider: {provider}",
                              hint=f"Choose one of: {', '.join(sorted(adapters))}")
    return adapter


def list_providers(adapters: Dict[str, ProviderAdapter]) -> List[Dict[str, object]]:
    return [
        {"id": name, "name": a.display_name, "domain": a.domain, "strategies": list(a.strategies)}
        for name, a in adapters.items()
    ]
