"""
Static provider profiles and ranking weights.
"""

from dataclasses import dataclass, field
from typing import Dict, Tuple

WEIGHTS: Tuple[Tuple[str, float], ...] = (
    ("framework affinity", 0.4),
    ("feature match", 0.3),
    ("performance", 0.2),
    ("cost", 0.1),
)

DEFAULT_AFFINITY = 0.3


@dataclass(frozen=True)
class ProviderProfile:
    name: str
    display_name: str
    affinity: Dict[str, float]
    features: Dict[str, bool]
    performance: float
    cost_score: float
    estimated_cost: str
    domain: str = ""
    notes: Tuple[str, ...] = field(default_factory=tuple)


# Declaration order breaks ranking ties.
PROVIDER_PROFILES: Tuple[ProviderProfile, ...] = (
    ProviderProfile(
        name="vercel",
        display_name="Vercel",
        affinity={
            "Next.js": 1.0, "SvelteKit": 0.9, "Nuxt": 0.85, "Vite": 0.8, "React": 0.8,
            "Vue.js": 0.75, "Gatsby": 0.7, "Static Site": 0.7, "Node.js": 0.5,
            "Express.js": 0.4, "FastAPI": 0.3, "Flask": 0.3,
        },
        features={"database": False, "long_running": False, "static_only": True},
        performance=0.95,
        cost_score=0.9,
        estimated_cost="Free hobby tier; Pro from $20/month",
        domain="vercel.app",
    ),
    ProviderProfile(
        name="netlify",
        display_name="Netlify",
        affinity={
            "Gatsby": 1.0, "React": 0.9, "Vue.js": 0.9, "Vite": 0.9, "Static Site": 1.0,
            "Nuxt": 0.8, "Next.js": 0.7, "SvelteKit": 0.8, "Node.js": 0.4,
        },
        features={"database": False, "long_running": False, "static_only": True},
        performance=0.9,
        cost_score=0.9,
        estimated_cost="Free starter tier; Pro from $19/month",
        domain="netlify.app",
    ),
    ProviderProfile(
        name="render",
        display_name="Render",
        affinity={
            "Express.js": 1.0, "FastAPI": 1.0, "Flask": 1.0, "Django": 1.0, "Docker": 1.0,
            "Go": 0.9, "Node.js": 0.9, "Python": 0.9, "Next.js": 0.5, "Static Site": 0.6,
        },
        features={"database": True, "long_running": True, "static_only": True},
        performance=0.8,
        cost_score=0.7,
        estimated_cost="Free web service tier; paid instances from $7/month",
        domain="onrender.com",
    ),
)
