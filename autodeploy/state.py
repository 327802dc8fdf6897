"""
Deployment records and the stores that persist them.
"""

import json
import os
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .errors import ConflictError, NotFoundError
from .events import LogEntry, LogLevel, append_entry, format_ts, parse_ts, utcnow
from .ids import is_valid_deployment_id
from .redact import redact_string
from .settings import get_autodeploy_home
from .status import DeploymentStatus, check_transition, is_terminal


@dataclass
class DeploymentRecord:
    id: str
    project_id: str
    provider: str
    branch: str
    commit: str = "latest"
    owner_id: Optional[str] = None
    repository: Optional[str] = None
    status: DeploymentStatus = DeploymentStatus.QUEUED
    strategy: Optional[str] = None
    attempts: List[str] = field(default_factory=list)
    url: Optional[str] = None
    provider_ref: Optional[str] = None
    build_config: Optional[Dict[str, Any]] = None
    simulated: bool = False
    error_code: Optional[str] = None
    reason: Optional[str] = None
    cancel_requested: bool = False
    rollback_of: Optional[str] = None
    logs: List[LogEntry] = field(default_factory=list)
    started_at: str = field(default_factory=lambda: format_ts(utcnow()))
    completed_at: Optional[str] = None

    @property
    def terminal(self) -> bool:
        return is_terminal(self.status)

    def log(self, level: LogLevel, message: str, secrets: Iterable[str] = ()) -> LogEntry:
        return append_entry(self.logs, level, redact_string(message, secrets))

    def transition(self, new: DeploymentStatus, message: Optional[str] = None,
                   level: LogLevel = LogLevel.INFO) -> None:
        """
        Move to a new status, logging the change.

        Raises:
            InvalidTransition: If the move is not in the transition table
        """
        check_transition(self.status, new)
        self.status = DeploymentStatus(new)
        if message:
            self.log(level, message)
        if self.terminal:
            self.completed_at = self.logs[-1].timestamp if self.logs else format_ts(utcnow())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "owner_id": self.owner_id,
            "provider": self.provider,
            "repository": self.repository,
            "branch": self.branch,
            "commit": self.commit,
            "status": self.status.value,
            "strategy": self.strategy,
            "attempts": list(self.attempts),
            "url": self.url,
            "provider_ref": self.provider_ref,
            "build_config": self.build_config,
            "simulated": self.simulated,
            "error_code": self.error_code,
            "reason": self.reason,
            "cancel_requested": self.cancel_requested,
            "rollback_of": self.rollback_of,
            "logs": [e.to_dict() for e in self.logs],
            "started_at": self.started_at,
            "completed_at": self.completed_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeploymentRecord":
        return cls(
            id=data["id"],
            project_id=data["project_id"],
            owner_id=data.get("owner_id"),
            provider=data["provider"],
            repository=data.get("repository"),
            branch=data["branch"],
            commit=data.get("commit", "latest"),
            status=DeploymentStatus(data.get("status", "queued")),
            strategy=data.get("strategy"),
            attempts=list(data.get("attempts") or []),
            url=data.get("url"),
            provider_ref=data.get("provider_ref"),
            build_config=data.get("build_config"),
            simulated=bool(data.get("simulated", False)),
            error_code=data.get("error_code"),
            reason=data.get("reason"),
            cancel_requested=bool(data.get("cancel_requested", False)),
            rollback_of=data.get("rollback_of"),
            logs=[LogEntry.from_dict(e) for e in data.get("logs") or []],
            started_at=data["started_at"],
            completed_at=data.get("completed_at"),
        )


class DeploymentStore(ABC):
    """Keyed read/write API over deployment records."""

    def __init__(self):
        self._lock = threading.RLock()

    @abstractmethod
    def _load(self, deployment_id: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def _dump(self, data: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    def _all(self) -> List[Dict[str, Any]]:
        pass

    def get(self, deployment_id: str) -> DeploymentRecord:
        """
        Load a record.

        Raises:
            NotFoundError: If no record has this id
        """
        with self._lock:
            data = self._load(deployment_id)
        if data is None:
            raise NotFoundError(f"Deployment {deployment_id} not found", hint="Check the deployment ID")
        return DeploymentRecord.from_dict(data)

    def create(self, record: DeploymentRecord) -> DeploymentRecord:
        """
        Insert a new record; the id check and the write happen under one lock.

        Raises:
            ConflictError: A record with this id already exists
        """
        with self._lock:
            existing = self._load(record.id)
            if existing is not None:
                status = DeploymentStatus(existing.get("status", "queued"))
                if not is_terminal(status):
                    raise ConflictError(f"Deployment {record.id} is still {status.value}")
                raise ConflictError(f"Deployment {record.id} already exists",
                                    hint="Omit deployment_id to get a fresh one")
            self._dump(record.to_dict())
        return record

    def save(self, record: DeploymentRecord) -> DeploymentRecord:
        """
        Persist a record. Stored log entries are never dropped and a stored
        cancel request is never cleared by a later save.
        """
        with self._lock:
            existing = self._load(record.id)
            if existing is not None:
                if existing.get("cancel_requested"):
                    record.cancel_requested = True
                stored_logs = existing.get("logs") or []
                if len(record.logs) < len(stored_logs):
                    raise ValueError(f"Refusing to truncate log of deployment {record.id}")
            self._dump(record.to_dict())
        return record

    def request_cancel(self, deployment_id: str) -> DeploymentRecord:
        with self._lock:
            record = self.get(deployment_id)
            record.cancel_requested = True
            self._dump(record.to_dict())
        return record

    def list_for_project(self, project_id: str) -> List[DeploymentRecord]:
        """Records of one project, newest first."""
        with self._lock:
            rows = [d for d in self._all() if d.get("project_id") == project_id]
        records = [DeploymentRecord.from_dict(d) for d in rows]
        return sorted(records, key=lambda r: parse_ts(r.started_at), reverse=True)


class MemoryDeploymentStore(DeploymentStore):
    def __init__(self):
        super().__init__()
        self._rows: Dict[str, str] = {}

    def _load(self, deployment_id):
        raw = self._rows.get(deployment_id)
        return json.loads(raw) if raw is not None else None

    def _dump(self, data):
        self._rows[data["id"]] = json.dumps(data)

    def _all(self):
        return [json.loads(raw) for raw in self._rows.values()]


class FileDeploymentStore(DeploymentStore):
    """One JSON document per deployment under ``<home>/deployments``."""

    def __init__(self, root: Optional[Path] = None):
        super().__init__()
        self.root = Path(root) if root else get_autodeploy_home() / "deployments"
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, deployment_id: str) -> Path:
        if not is_valid_deployment_id(deployment_id):
            raise NotFoundError(f"Invalid deployment ID: {deployment_id}")
        return self.root / f"{deployment_id}.json"

    def _load(self, deployment_id):
        path = self._path(deployment_id)
        if not path.exists():
            return None
        with open(path, "r") as f:
            return json.load(f)

    def _dump(self, data):
        path = self._path(data["id"])
        tmp = path.with_suffix(".json.tmp")
        with open(tmp, "w") as f:
            json.dump(data, f, indent=2)
            f.flush()
        os.replace(tmp, path)

    def _all(self):
        rows = []
        for item in sorted(self.root.glob("d-*.json")):
            try:
                with open(item, "r") as f:
                    rows.append(json.load(f))
            except (OSError, json.JSONDecodeError):
                continue  # skip partially written or foreign files
        return rows
