"""
Credential row storage. Rows carry only the envelope, never plaintext.
"""

import json
import os
import threading
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ..settings import get_autodeploy_home
from .models import StoredCredential


class CredentialStore:
    """In-memory credential rows keyed by (owner, provider)."""

    def __init__(self):
        self._lock = threading.RLock()
        self._rows: Dict[Tuple[str, str], StoredCredential] = {}

    def get(self, owner_id: str, provider: str) -> Optional[StoredCredential]:
        with self._lock:
            return self._rows.get((owner_id, provider))

    def put(self, credential: StoredCredential) -> None:
        with self._lock:
            self._rows[(credential.owner_id, credential.provider)] = credential
            self._flush()

    def delete(self, owner_id: str, provider: str) -> bool:
        with self._lock:
            removed = self._rows.pop((owner_id, provider), None) is not None
            if removed:
                self._flush()
            return removed

    def all(self) -> List[StoredCredential]:
        with self._lock:
            return [self._rows[k] for k in sorted(self._rows)]

    def _flush(self) -> None:
        pass


class FileCredentialStore(CredentialStore):
    """Credential rows persisted to ``<home>/credentials.json``."""

    def __init__(self, path: Optional[Path] = None):
        super().__init__()
        self.path = Path(path) if path else get_autodeploy_home() / "credentials.json"
        if self.path.exists():
            with open(self.path, "r") as f:
                for row in json.load(f).get("credentials", []):
                    cred = StoredCredential.from_dict(row)
                    self._rows[(cred.owner_id, cred.provider)] = cred

    def _flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".json.tmp")
        rows = [self._rows[k].to_dict() for k in sorted(self._rows)]
        with open(tmp, "w") as f:
            json.dump({"credentials": rows}, f, indent=2)
        os.chmod(tmp, 0o600)
        os.replace(tmp, self.path)
