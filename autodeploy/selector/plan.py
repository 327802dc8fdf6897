from dataclasses import asdict, dataclass, field
from typing import Dict, List, Tuple


@dataclass(frozen=True)
class InfraNeeds:
    database: bool = False
    long_running: bool = False
    static_only: bool = False

    def required(self) -> List[str]:
        return [name for name in ("database", "long_running", "static_only") if getattr(self, name)]

    def to_dict(self) -> Dict[str, bool]:
        return asdict(self)


@dataclass(frozen=True)
class ProviderCandidate:
    provider: str
    score: float
    suitability: str            # "high" | "medium" | "low"
    rationale: str
    estimated_cost: str
    terms: Tuple[Tuple[str, float], ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict:
        return {
            "provider": self.provider,
            "score": self.score,
            "suitability": self.suitability,
            "rationale": self.rationale,
            "estimated_cost": self.estimated_cost,
            "terms": {name: value for name, value in self.terms},
        }
