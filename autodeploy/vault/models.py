"""
Credential rows and the transient handles the vault hands out.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class CredentialMode(str, Enum):
    REAL = "real"
    DEMO = "demo"


@dataclass
class StoredCredential:
    """A persisted credential. Only the envelope ever holds secret material."""
    owner_id: str
    provider: str
    envelope: str
    mode: CredentialMode
    identity: Optional[str] = None
    expires_at: Optional[str] = None
    created_at: Optional[str] = None
    rotated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner_id": self.owner_id,
            "provider": self.provider,
            "envelope": self.envelope,
            "mode": self.mode.value,
            "identity": self.identity,
            "expires_at": self.expires_at,
            "created_at": self.created_at,
            "rotated_at": self.rotated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StoredCredential":
        return cls(
            owner_id=data["owner_id"],
            provider=data["provider"],
            envelope=data["envelope"],
            mode=CredentialMode(data.get("mode", "real")),
            identity=data.get("identity"),
            expires_at=data.get("expires_at"),
            created_at=data.get("created_at"),
            rotated_at=data.get("rotated_at"),
        )


class SecretHandle:
    """
    Decrypted secret for one deployment attempt.

    The value is cleared when the owning ``open_secret`` block exits; reading
    it afterwards raises ``RuntimeError``.
    """

    __slots__ = ("provider", "mode", "_value")

    def __init__(self, provider: str, mode: CredentialMode, value: str):
        self.provider = provider
        self.mode = mode
        self._value: Optional[str] = value

    @property
    def demo(self) -> bool:
        return self.mode == CredentialMode.DEMO

    @property
    def value(self) -> str:
        if self._value is None:
            raise RuntimeError("Secret handle used outside its open_secret block")
        return self._value

    def drop(self) -> None:
        self._value = None

    def __repr__(self):
        return f"SecretHandle(provider={self.provider!r}, mode={self.mode.value!r})"


@dataclass
class ConnectionStatus:
    owner_id: str
    provider: str
    connected: bool
    mode: Optional[CredentialMode] = None
    identity: Optional[str] = None
    rotated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner_id": self.owner_id,
            "provider": self.provider,
            "connected": self.connected,
            "mode": self.mode.value if self.mode else None,
            "identity": self.identity,
            "rotated_at": self.rotated_at,
        }


@dataclass
class RotationItem:
    owner_id: str
    provider: str
    ok: bool
    error_code: Optional[str] = None
    message: Optional[str] = None


@dataclass
class RotationReport:
    items: List[RotationItem] = field(default_factory=list)

    @property
    def rotated(self) -> int:
        return sum(1 for i in self.items if i.ok)

    @property
    def failed(self) -> int:
        return sum(1 for i in self.items if not i.ok)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rotated": self.rotated,
            "failed": self.failed,
            "items": [
                {
                    "owner_id": i.owner_id,
                    "provider": i.provider,
                    "ok": i.ok,
                    "error_code": i.error_code,
                    "message": i.message,
                }
                for i in self.items
            ],
        }
