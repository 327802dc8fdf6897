from __future__ import annotations

import fnmatch
import os
from pathlib import Path
from typing import Generator, Iterable, Optional, Tuple


IGNORE_DIRS = {
    ".git",
    "node_modules",
    ".venv",
    "venv",
    "__pycache__",
    ".mypy_cache",
    ".next",
    ".nuxt",
    ".output",
    "build",
    "dist",
    "out",
    ".DS_Store",
}

SOURCE_PATTERNS = [
    "*.py",
    "*.js",
    "*.mjs",
    "*.ts",
    "*.tsx",
    "*.jsx",
    "*.go",
]

MAX_SCAN_FILES = 400


def _should_include(path: Path, patterns: Optional[Iterable[str]]) -> bool:
    if patterns is None:
        patterns = SOURCE_PATTERNS
    name = path.name
    for pat in patterns:
        if fnmatch.fnmatch(name, pat):
            return True
    return False


def iter_files(root: str | Path, patterns: Optional[Iterable[str]] = None,
               max_files: int = MAX_SCAN_FILES) -> Generator[Tuple[Path, Path], None, None]:
    """Yield (absolute, relative) paths in a stable order, stopping after max_files."""
    root_path = Path(root).resolve()
    yielded = 0
    for dirpath, dirnames, filenames in os.walk(root_path):
        # prune ignored dirs; sort for a deterministic walk
        dirnames[:] = sorted(d for d in dirnames if d not in IGNORE_DIRS)
        for filename in sorted(filenames):
            p = Path(dirpath) / filename
            if _should_include(p, patterns):
                yield p, p.relative_to(root_path)
                yielded += 1
                if yielded >= max_files:
                    return


def read_text(path: str | Path, limit_bytes: int = 1_000_000) -> str:
    p = Path(path)
    try:
        if p.stat().st_size > limit_bytes:
            return ""  # too large, skip content
    except OSError:
        return ""

    try:
        with open(p, "r", encoding="utf-8-sig", errors="replace") as f:
            return f.read()
    except OSError:
        return ""


def list_root(root: str | Path, limit: int = 500) -> Tuple[list[str], list[str]]:
    """Return sorted (files, directories) names directly under root."""
    root_path = Path(root)
    files: list[str] = []
    dirs: list[str] = []
    try:
        entries = sorted(root_path.iterdir(), key=lambda p: p.name)
    except OSError:
        return files, dirs
    for entry in entries[:limit]:
        if entry.is_dir():
            if entry.name not in IGNORE_DIRS:
                dirs.append(entry.name)
        elif entry.is_file():
            files.append(entry.name)
    return files, dirs
