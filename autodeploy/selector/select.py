from typing import List, Optional, Sequence, Tuple

from .plan import InfraNeeds, ProviderCandidate
from .rules import DEFAULT_AFFINITY, PROVIDER_PROFILES, WEIGHTS, ProviderProfile

COST_PREFERENCES = {"low", "any"}


def _feature_match(profile: ProviderProfile, needs: InfraNeeds) -> float:
    required = needs.required()
    if not required:
        return 1.0
    met = sum(1 for name in required if profile.features.get(name))
    return met / len(required)


def _cost_match(profile: ProviderProfile, cost_preference: str) -> float:
    if cost_preference == "any":
        return 1.0
    return profile.cost_score


def _suitability(score: float) -> str:
    if score >= 0.75:
        return "high"
    if score >= 0.5:
        return "medium"
    return "low"


def score_provider(profile: ProviderProfile, framework: str, needs: InfraNeeds,
                   preferred: Optional[str] = None, cost_preference: str = "low") -> ProviderCandidate:
    if preferred is not None and profile.name == preferred:
        affinity = 1.0
    else:
        affinity = profile.affinity.get(framework, DEFAULT_AFFINITY)

    raw = {
        "framework affinity": affinity,
        "feature match": _feature_match(profile, needs),
        "performance": profile.performance,
        "cost": _cost_match(profile, cost_preference),
    }
    terms: List[Tuple[str, float]] = []
    parts: List[str] = []
    for name, weight in WEIGHTS:
        contribution = round(weight * raw[name], 4)
        terms.append((name, contribution))
        if contribution <= 0:
            continue
        if name == "framework affinity":
            parts.append(f"framework affinity {contribution:.2f} ({framework})")
        elif name == "feature match":
            required = ", ".join(needs.required()) or "no special requirements"
            parts.append(f"feature match {contribution:.2f} ({required})")
        elif name == "cost":
            parts.append(f"cost {contribution:.2f} ({profile.estimated_cost})")
        else:
            parts.append(f"{name} {contribution:.2f}")

    score = round(sum(c for _, c in terms), 4)
    return ProviderCandidate(
        provider=profile.name,
        score=score,
        suitability=_suitability(score),
        rationale=f"{profile.display_name}: " + "; ".join(parts),
        estimated_cost=profile.estimated_cost,
        terms=tuple(terms),
    )


def rank_providers(framework: str, needs: InfraNeeds, preferred: Optional[str] = None,
                   cost_preference: str = "low",
                   profiles: Sequence[ProviderProfile] = PROVIDER_PROFILES) -> Tuple[ProviderCandidate, ...]:
    """
    Score every known provider for a framework and its infrastructure needs.

    Candidates are sorted by descending score; ``sorted`` is stable so equal
    scores keep profile declaration order.
    """
    if cost_preference not in COST_PREFERENCES:
        cost_preference = "low"
    scored = [score_provider(p, framework, needs, preferred, cost_preference) for p in profiles]
    return tuple(sorted(scored, key=lambda c: c.score, reverse=True))
