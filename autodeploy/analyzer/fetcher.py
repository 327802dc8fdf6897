from __future__ import annotations

import hashlib
import os
import shutil
import subprocess
import zipfile
from pathlib import Path
from typing import Optional, Tuple

import requests

from .walk import IGNORE_DIRS

MAX_FILES = 50_000
MAX_TOTAL_BYTES = 200 * 1024 * 1024  # 200 MB
CLONE_TIMEOUT_S = 120
DOWNLOAD_TIMEOUT_S = 60


def _safe_copy_tree(src: Path, dst: Path) -> None:
    dst.mkdir(parents=True, exist_ok=True)
    total_files = 0
    total_bytes = 0

    for root, dirs, files in os.walk(src):
        dirs[:] = [d for d in dirs if d not in IGNORE_DIRS]

        rel = Path(root).relative_to(src)
        (dst / rel).mkdir(parents=True, exist_ok=True)

        for f in files:
            sp = Path(root) / f
            dp = dst / rel / f
            try:
                size = sp.stat().st_size
            except OSError:
                continue

            total_files += 1
            total_bytes += size
            if total_files > MAX_FILES or total_bytes > MAX_TOTAL_BYTES:
                return

            try:
                shutil.copy2(sp, dp)
            except OSError:
                continue


def _hash_file(path: Path) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            h.update(chunk)
    return h.hexdigest()[:12]


def tree_fingerprint(root: Path, limit: int = 5_000) -> str:
    """Cheap content key for a local tree: relative paths, sizes and mtimes."""
    h = hashlib.sha256()
    seen = 0
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in IGNORE_DIRS)
        for name in sorted(filenames):
            p = Path(dirpath) / name
            try:
                st = p.stat()
            except OSError:
                continue
            h.update(f"{p.relative_to(root)}:{st.st_size}:{int(st.st_mtime)}".encode())
            seen += 1
            if seen >= limit:
                return h.hexdigest()[:12]
    return h.hexdigest()[:12]


def _git_head(checkout: Path) -> Optional[str]:
    try:
        r = subprocess.run(["git", "-C", str(checkout), "rev-parse", "HEAD"],
                           capture_output=True, text=True, check=True, timeout=30)
    except (OSError, subprocess.SubprocessError):
        return None
    return r.stdout.strip()[:12] or None


def fetch_into_workspace(source: str, workspace_root: str, branch: Optional[str] = None) -> Tuple[str, str]:
    """
    Returns (checkout_path, commit_hint).
    - If git: shallow clone of ``branch`` to workspace; commit_hint = commit SHA.
    - If zip: download, unzip to workspace; commit_hint = file hash prefix.
    - If local: copy tree into workspace; commit_hint = git HEAD or a tree fingerprint.
    """
    workspace = Path(workspace_root).resolve()
    workspace.mkdir(parents=True, exist_ok=True)
    checkout = workspace / "checkout"
    if checkout.exists():
        shutil.rmtree(checkout)

    if source.startswith("http://") or source.startswith("https://"):
        if source.endswith(".zip"):
            zip_path = workspace / "repo.zip"
            try:
                with requests.get(source, stream=True, timeout=DOWNLOAD_TIMEOUT_S) as r:
                    r.raise_for_status()
                    with open(zip_path, "wb") as f:
                        for chunk in r.iter_content(chunk_size=65536):
                            f.write(chunk)
            except requests.RequestException as e:
                raise RuntimeError(f"archive download failed: {e}")
            commit_hint = _hash_file(zip_path)
            with zipfile.ZipFile(zip_path, "r") as zf:
                zf.extractall(checkout)
            entries = [p for p in checkout.iterdir() if p.is_dir()]
            if len(entries) == 1:
                return str(entries[0].resolve()), commit_hint
            return str(checkout.resolve()), commit_hint

        cmd = ["git", "clone", "--depth", "1"]
        if branch:
            cmd += ["--branch", branch]
        cmd += [source, str(checkout)]
        try:
            subprocess.run(cmd, check=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE,
                           timeout=CLONE_TIMEOUT_S)
        except subprocess.CalledProcessError as e:
            raise RuntimeError(f"git clone failed: {e.stderr.decode(errors='ignore')}")
        except subprocess.TimeoutExpired:
            raise RuntimeError(f"git clone timed out after {CLONE_TIMEOUT_S}s")
        return str(checkout.resolve()), _git_head(checkout) or "HEAD"

    src_path = Path(source).expanduser().resolve()
    if src_path.is_dir():
        _safe_copy_tree(src_path, checkout)
        commit = _git_head(src_path) or f"local-{tree_fingerprint(src_path)}"
        return str(checkout.resolve()), commit

    raise ValueError(f"Unsupported source: {source}")
