"""
Credential vault: encrypted per-owner, per-provider provider tokens.
"""

import logging
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from ..errors import AutoDeployError, CredentialInvalid, CredentialMissing, ValidationError, VaultError
from ..events import format_ts, utcnow
from ..providers import default_adapters, get_adapter, is_demo_secret
from ..providers.base import DEMO_IDENTITY
from . import crypto
from .models import (
    ConnectionStatus,
    CredentialMode,
    RotationItem,
    RotationReport,
    SecretHandle,
    StoredCredential,
)
from .store import CredentialStore, FileCredentialStore

logger = logging.getLogger(__name__)

class CredentialVault:
    """
    Stores provider credentials encrypted at rest and lends them out one
    attempt at a time through ``open_secret``.
    """

    def __init__(self, store: Optional[CredentialStore] = None, master_key: Optional[bytes] = None,
                 adapters: Optional[Dict] = None):
        if adapters is None:
            adapters = default_adapters()
        self.store = store if store is not None else FileCredentialStore()
        self.master_key = master_key or crypto.load_or_create_master_key()
        self.adapters = adapters

    def _adapter(self, provider: str):
        return get_adapter(self.adapters, provider)

    def encrypt(self, secret: str, owner_id: str) -> str:
        return crypto.encrypt(secret, owner_id, self.master_key)

    def decrypt(self, envelope: str, owner_id: str) -> str:
        return crypto.decrypt(envelope, owner_id, self.master_key)

    def connect(self, owner_id: str, provider: str, secret: Optional[str] = None,
                demo: bool = False) -> StoredCredential:
        """
        Validate and store a credential.

        Demo markers are stored without contacting the provider; real tokens
        must pass the adapter's validation first.

        Raises:
            ValidationError: Unknown provider or missing owner
            CredentialInvalid: The provider rejected the token
            ProviderTimeout: The provider could not be reached
        """
        if not owner_id:
            raise ValidationError("owner_id is required")
        provider = provider.lower()
        adapter = self._adapter(provider)

        if demo or is_demo_secret(secret, provider):
            secret = f"demo-{provider}-token"
            mode = CredentialMode.DEMO
            identity = DEMO_IDENTITY
        else:
            check = adapter.validate_credential(secret)
            if not check.valid:
                raise CredentialInvalid(check.error or f"{adapter.display_name} rejected the token")
            mode = CredentialMode.REAL
            identity = check.identity

        now = format_ts(utcnow())
        existing = self.store.get(owner_id, provider)
        credential = StoredCredential(
            owner_id=owner_id,
            provider=provider,
            envelope=self.encrypt(secret, owner_id),
            mode=mode,
            identity=identity,
            created_at=existing.created_at if existing else now,
            rotated_at=now,
        )
        self.store.put(credential)
        logger.info(f"Stored {mode.value} {provider} credential for {owner_id}")
        return credential

    def disconnect(self, owner_id: str, provider: str) -> bool:
        return self.store.delete(owner_id, provider.lower())

    def status(self, owner_id: str, provider: str) -> ConnectionStatus:
        credential = self.store.get(owner_id, provider.lower())
        if credential is None:
            return ConnectionStatus(owner_id=owner_id, provider=provider, connected=False)
        return _connection(credential)

    def list(self, owner_id: str) -> List[ConnectionStatus]:
        """Connected providers for one owner, sorted by provider id."""
        owned = [c for c in self.store.all() if c.owner_id == owner_id]
        return [_connection(c) for c in sorted(owned, key=lambda c: c.provider)]

    @contextmanager
    def open_secret(self, owner_id: str, provider: str) -> Iterator[SecretHandle]:
        """
        Decrypt a credential for the duration of the block.

        Raises:
            CredentialMissing: Nothing stored for (owner, provider)
            VaultError: The envelope cannot be opened
        """
        credential = self.store.get(owner_id, provider.lower())
        if credential is None:
            raise CredentialMissing(f"No {provider} credential connected for {owner_id}")
        handle = SecretHandle(provider, credential.mode, self.decrypt(credential.envelope, owner_id))
        try:
            yield handle
        finally:
            handle.drop()

    def _rotate_one(self, credential: StoredCredential) -> StoredCredential:
        secret = self.decrypt(credential.envelope, credential.owner_id)
        identity = credential.identity
        if credential.mode == CredentialMode.REAL:
            adapter = self._adapter(credential.provider)
            check = adapter.validate_credential(secret)
            if not check.valid:
                raise CredentialInvalid(check.error or "Stored token no longer valid")
            identity = check.identity or identity
            if adapter.supports_refresh:
                secret = adapter.refresh_credential(secret) or secret
        return StoredCredential(
            owner_id=credential.owner_id,
            provider=credential.provider,
            envelope=self.encrypt(secret, credential.owner_id),
            mode=credential.mode,
            identity=identity,
            expires_at=credential.expires_at,
            created_at=credential.created_at,
            rotated_at=format_ts(utcnow()),
        )

    def rotate_all(self) -> RotationReport:
        """
        Re-validate and re-encrypt every stored credential. A failing item is
        left untouched and reported; the rest of the batch still runs.
        """
        report = RotationReport()
        for credential in self.store.all():
            try:
                rotated = self._rotate_one(credential)
            except AutoDeployError as e:
                logger.warning(f"Rotation failed for {credential.owner_id}/{credential.provider}: {e.code}")
                report.items.append(RotationItem(credential.owner_id, credential.provider, ok=False,
                                                 error_code=e.code, message=e.message))
                continue
            self.store.put(rotated)
            report.items.append(RotationItem(credential.owner_id, credential.provider, ok=True))
        logger.info(f"Credential rotation: {report.rotated} rotated, {report.failed} failed")
        return report


def _connection(credential: StoredCredential) -> ConnectionStatus:
    return ConnectionStatus(
        owner_id=credential.owner_id,
        provider=credential.provider,
        connected=True,
        mode=credential.mode,
        identity=credential.identity,
        rotated_at=credential.rotated_at,
    )


__all__ = [
    "ConnectionStatus",
    "CredentialMode",
    "CredentialStore",
    "CredentialVault",
    "FileCredentialStore",
    "RotationReport",
    "SecretHandle",
    "StoredCredential",
    "VaultError",
    "is_demo_secret",
]
