from .plan import InfraNeeds, ProviderCandidate
from .rules import PROVIDER_PROFILES, ProviderProfile
from .select import rank_providers, score_provider

__all__ = [
    "InfraNeeds",
    "ProviderCandidate",
    "ProviderProfile",
    "PROVIDER_PROFILES",
    "rank_providers",
    "score_provider",
]
