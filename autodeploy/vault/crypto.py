"""
Envelope encryption for provider credentials.

Each envelope gets its own key, derived with HKDF-SHA256 from the master key
and a random salt, and is sealed with AES-256-GCM using the owner id as
associated data.
"""

import base64
import logging
import os
import secrets
from pathlib import Path
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from ..errors import VaultError
from ..settings import get_autodeploy_home, get_vault_key_setting

logger = logging.getLogger(__name__)

ENVELOPE_VERSION = "v1"
SALT_BYTES = 16
NONCE_BYTES = 12
KEY_BYTES = 32
HKDF_INFO = b"autodeploy-credential-v1"


def _derive(master_key: bytes, salt: bytes) -> bytes:
    hkdf = HKDF(algorithm=hashes.SHA256(), length=KEY_BYTES, salt=salt, info=HKDF_INFO)
    return hkdf.derive(master_key)


def encrypt(secret: str, owner_id: str, master_key: bytes) -> str:
    """
    Seal a secret for one owner.

    Args:
        secret: Plaintext credential
        owner_id: Owner bound into the envelope as associated data
        master_key: 32-byte master key

    Returns:
        Envelope string ``v1.<urlsafe-b64(salt|nonce|ciphertext)>``
    """
    if not isinstance(secret, str):
        raise VaultError("Secret must be a string")
    salt = secrets.token_bytes(SALT_BYTES)
    nonce = secrets.token_bytes(NONCE_BYTES)
    key = _derive(master_key, salt)
    sealed = AESGCM(key).encrypt(nonce, secret.encode("utf-8"), owner_id.encode("utf-8"))
    blob = base64.urlsafe_b64encode(salt + nonce + sealed).decode("ascii")
    return f"{ENVELOPE_VERSION}.{blob}"


def decrypt(envelope: str, owner_id: str, master_key: bytes) -> str:
    """
    Open an envelope.

    Raises:
        VaultError: If the envelope is malformed, was sealed for a different
            owner, or was sealed under a different master key
    """
    version, _, blob = (envelope or "").partition(".")
    if version != ENVELOPE_VERSION or not blob:
        raise VaultError("Unsupported credential envelope")
    try:
        raw = base64.urlsafe_b64decode(blob.encode("ascii"))
    except (ValueError, UnicodeEncodeError) as e:
        raise VaultError(f"Corrupt credential envelope: {e}")
    if len(raw) <= SALT_BYTES + NONCE_BYTES:
        raise VaultError("Corrupt credential envelope: too short")

    salt, nonce, sealed = raw[:SALT_BYTES], raw[SALT_BYTES:SALT_BYTES + NONCE_BYTES], raw[SALT_BYTES + NONCE_BYTES:]
    key = _derive(master_key, salt)
    try:
        plain = AESGCM(key).decrypt(nonce, sealed, owner_id.encode("utf-8"))
    except InvalidTag:
        raise VaultError("Credential envelope does not belong to this owner",
                         hint="Reconnect the provider account")
    return plain.decode("utf-8")


def decode_master_key(raw: str) -> bytes:
    try:
        key = base64.urlsafe_b64decode(raw.strip().encode("ascii"))
    except (ValueError, UnicodeEncodeError) as e:
        raise VaultError(f"Invalid vault key: {e}")
    if len(key) != KEY_BYTES:
        raise VaultError(f"Vault key must decode to {KEY_BYTES} bytes, got {len(key)}")
    return key


def generate_master_key() -> str:
    return base64.urlsafe_b64encode(secrets.token_bytes(KEY_BYTES)).decode("ascii")


def load_or_create_master_key(key_file: Optional[Path] = None) -> bytes:
    """
    Resolve the master key: AUTODEPLOY_VAULT_KEY first, then the key file,
    generating the file with owner-only permissions when neither exists.
    """
    env_key = get_vault_key_setting()
    if env_key:
        return decode_master_key(env_key)

    key_file = Path(key_file) if key_file else get_autodeploy_home() / "vault.key"
    if key_file.exists():
        return decode_master_key(key_file.read_text())

    key_file.parent.mkdir(parents=True, exist_ok=True)
    encoded = generate_master_key()
    fd = os.open(key_file, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    with os.fdopen(fd, "w") as f:
        f.write(encoded)
    os.chmod(key_file, 0o600)
    logger.info(f"Generated new vault key at {key_file}")
    return decode_master_key(encoded)
