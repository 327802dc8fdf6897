from dataclasses import asdict, dataclass, field
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple, Union

from autodeploy.selector.plan import InfraNeeds, ProviderCandidate

SignalValue = Union[bool, str]


@dataclass(frozen=True)
class SignalBag:
    """Flattened, read-only evidence extracted from one repository."""
    signals: Mapping[str, SignalValue] = field(default_factory=dict)
    caveats: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "signals", MappingProxyType(dict(self.signals)))
        object.__setattr__(self, "caveats", tuple(self.caveats))

    @classmethod
    def of(cls, *keys: str, **values: SignalValue) -> "SignalBag":
        data: Dict[str, SignalValue] = {k: True for k in keys}
        data.update(values)
        return cls(signals=data)

    def has(self, key: str) -> bool:
        return bool(self.signals.get(key))

    def get(self, key: str, default: Optional[SignalValue] = None) -> Optional[SignalValue]:
        return self.signals.get(key, default)

    def with_prefix(self, prefix: str) -> List[str]:
        return sorted(k[len(prefix):] for k in self.signals if k.startswith(prefix) and self.signals[k])

    def __contains__(self, key: str) -> bool:
        return self.has(key)

    def __len__(self) -> int:
        return len(self.signals)


@dataclass(frozen=True)
class BuildConfiguration:
    install_command: Optional[str] = None
    build_command: Optional[str] = None
    output_directory: Optional[str] = None
    start_command: Optional[str] = None

    def merged(self, override: Optional["BuildConfiguration"]) -> "BuildConfiguration":
        """Return a copy where every non-empty field of ``override`` wins."""
        if override is None:
            return self
        return BuildConfiguration(
            install_command=override.install_command or self.install_command,
            build_command=override.build_command or self.build_command,
            output_directory=override.output_directory or self.output_directory,
            start_command=override.start_command or self.start_command,
        )

    def to_dict(self) -> Dict[str, Optional[str]]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Mapping]) -> Optional["BuildConfiguration"]:
        if not data:
            return None
        return cls(
            install_command=data.get("install_command"),
            build_command=data.get("build_command"),
            output_directory=data.get("output_directory"),
            start_command=data.get("start_command"),
        )


@dataclass(frozen=True)
class DetectionResult:
    framework: str
    confidence: float
    rule_id: Optional[str]
    build_config: BuildConfiguration
    needs: InfraNeeds
    providers: Tuple[ProviderCandidate, ...]
    rationale: Tuple[str, ...] = ()
    caveats: Tuple[str, ...] = ()
    env_vars: Tuple[str, ...] = ()
    fallback_used: bool = False

    @property
    def recommended_provider(self) -> Optional[str]:
        return self.providers[0].provider if self.providers else None

    def to_dict(self) -> Dict:
        return {
            "framework": self.framework,
            "confidence": self.confidence,
            "rule_id": self.rule_id,
            "build_config": self.build_config.to_dict(),
            "needs": self.needs.to_dict(),
            "recommended_provider": self.recommended_provider,
            "providers": [p.to_dict() for p in self.providers],
            "rationale": list(self.rationale),
            "caveats": list(self.caveats),
            "env_vars": list(self.env_vars),
            "fallback_used": self.fallback_used,
        }
