from __future__ import annotations

import logging
import tempfile
import threading
from typing import Dict, Optional, Tuple

from .detect import detect
from .fetcher import fetch_into_workspace
from .report import emit_report
from .signals import extract_signals
from .spec import BuildConfiguration, DetectionResult, SignalBag

logger = logging.getLogger(__name__)


class DetectionCache:
    """Detection results keyed by (repository id, commit sha)."""

    def __init__(self, max_entries: int = 256):
        self.max_entries = max_entries
        self._entries: Dict[Tuple[str, str], DetectionResult] = {}
        self._lock = threading.Lock()

    def get(self, repository: str, commit: str) -> Optional[DetectionResult]:
        with self._lock:
            return self._entries.get((repository, commit))

    def put(self, repository: str, commit: str, result: DetectionResult) -> None:
        with self._lock:
            if len(self._entries) >= self.max_entries:
                # drop the oldest insertion
                self._entries.pop(next(iter(self._entries)))
            self._entries[(repository, commit)] = result

    def __len__(self) -> int:
        return len(self._entries)


def analyze_checkout(app_root: str, cost_preference: str = "low") -> DetectionResult:
    """
    Perform static analysis on app_root and return a DetectionResult.
    Must never execute user code. File-size and count limits apply.
    """
    return detect(extract_signals(app_root), cost_preference=cost_preference)


def analyze_repo(source: str, branch: Optional[str] = None, cache: Optional[DetectionCache] = None,
                 workspace_root: Optional[str] = None, cost_preference: str = "low") -> Tuple[DetectionResult, str]:
    """Fetch a repository, then detect. Returns (result, commit)."""
    with tempfile.TemporaryDirectory(prefix="autodeploy-", dir=workspace_root) as workspace:
        checkout, commit = fetch_into_workspace(source, workspace, branch=branch)
        repo_key = f"{source}#{branch or ''}"
        if cache is not None:
            cached = cache.get(repo_key, commit)
            if cached is not None:
                logger.info(f"Detection cache hit for {repo_key}@{commit}")
                return cached, commit
        result = analyze_checkout(checkout, cost_preference=cost_preference)
        if cache is not None:
            cache.put(repo_key, commit, result)
    logger.info(f"Detected {result.framework} ({result.confidence:.2f}) for {source}")
    return result, commit


__all__ = [
    "BuildConfiguration",
    "DetectionCache",
    "DetectionResult",
    "SignalBag",
    "analyze_checkout",
    "analyze_repo",
    "detect",
    "emit_report",
    "extract_signals",
]
