from __future__ import annotations

import json
import logging
import re
import tomllib
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from .spec import SignalBag, SignalValue
from .walk import iter_files, list_root, read_text

logger = logging.getLogger(__name__)

MANIFEST_LIMIT_BYTES = 256 * 1024

ENV_FILES = [".env.example", ".env.sample", ".env.template", ".env"]

COMPOSE_FILES = ["docker-compose.yml", "docker-compose.yaml", "compose.yaml", "compose.yml"]

DATABASE_IMAGES = ("postgres", "mysql", "mariadb", "mongo", "redis")

STATIC_OUTPUT_DIRS = ("build", "dist", "out", "public")

ENV_USAGE = re.compile(
    r"os\.environ\[['\"]([A-Z0-9_]+)['\"]\]"
    r"|os\.environ\.get\(['\"]([A-Z0-9_]+)['\"]"
    r"|os\.getenv\(['\"]([A-Z0-9_]+)['\"]"
    r"|process\.env\.([A-Z0-9_]+)"
    r"|import\.meta\.env\.([A-Z0-9_]+)"
)

REQUIREMENT_NAME = re.compile(r"^([A-Za-z0-9][A-Za-z0-9._-]*)")


def _normalize_py(name: str) -> str:
    return name.strip().lower().replace("_", "-")


class _Collector:
    def __init__(self):
        self.signals: Dict[str, SignalValue] = {}
        self.caveats: List[str] = []

    def set(self, key: str, value: SignalValue = True) -> None:
        self.signals.setdefault(key, value)

    def drop(self, key: str) -> None:
        self.signals.pop(key, None)

    def unparseable(self, name: str, error: Exception) -> None:
        # Treat the file as absent for scoring, but keep a note for the user
        self.drop(f"file:{name}")
        self.caveats.append(f"{name} could not be parsed ({error.__class__.__name__}); ignored for detection")
        logger.debug(f"Unparseable manifest {name}: {error}")


def _read_manifest(root: Path, name: str) -> Optional[str]:
    p = root / name
    if not p.is_file():
        return None
    return read_text(p, limit_bytes=MANIFEST_LIMIT_BYTES)


def _package_json(root: Path, out: _Collector) -> None:
    text = _read_manifest(root, "package.json")
    if text is None:
        return
    try:
        pkg = json.loads(text)
        if not isinstance(pkg, dict):
            raise ValueError("top-level value is not an object")
    except ValueError as e:
        out.unparseable("package.json", e)
        return

    for section in ("dependencies", "devDependencies"):
        deps = pkg.get(section) or {}
        if isinstance(deps, dict):
            for name, version in sorted(deps.items()):
                out.set(f"dependency:{name}", str(version) if version else True)

    scripts = pkg.get("scripts") or {}
    if isinstance(scripts, dict):
        for name, command in sorted(scripts.items()):
            out.set(f"script:{name}", str(command) if command else True)


def _requirements_txt(root: Path, out: _Collector) -> None:
    text = _read_manifest(root, "requirements.txt")
    if text is None:
        return
    for line in text.splitlines():
        line = line.split("#", 1)[0].strip()
        if not line or line.startswith("-"):
            continue
        m = REQUIREMENT_NAME.match(line)
        if m:
            out.set(f"dependency:{_normalize_py(m.group(1))}")


def _toml_manifest(root: Path, name: str, out: _Collector) -> Optional[dict]:
    text = _read_manifest(root, name)
    if text is None:
        return None
    try:
        return tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        out.unparseable(name, e)
        return None


def _table(data: dict, key: str) -> dict:
    value = data.get(key, {})
    if not isinstance(value, dict):
        raise ValueError(f"[{key}] is not a table")
    return value


def _pyproject(root: Path, out: _Collector) -> None:
    data = _toml_manifest(root, "pyproject.toml", out)
    if not data:
        return
    try:
        project = _table(data, "project")
        requirements = project.get("dependencies", [])
        if not isinstance(requirements, list):
            raise ValueError("project.dependencies is not an array")
        poetry = _table(_table(_table(data, "tool"), "poetry"), "dependencies")
    except ValueError as e:
        out.unparseable("pyproject.toml", e)
        return
    for spec in requirements:
        m = REQUIREMENT_NAME.match(str(spec))
        if m:
            out.set(f"dependency:{_normalize_py(m.group(1))}")
    for name in poetry:
        if name.lower() != "python":
            out.set(f"dependency:{_normalize_py(name)}")


def _pipfile(root: Path, out: _Collector) -> None:
    data = _toml_manifest(root, "Pipfile", out)
    if not data:
        return
    try:
        sections = [_table(data, "packages"), _table(data, "dev-packages")]
    except ValueError as e:
        out.unparseable("Pipfile", e)
        return
    for section in sections:
        for name in section:
            out.set(f"dependency:{_normalize_py(name)}")


def _compose(root: Path, out: _Collector) -> None:
    for name in COMPOSE_FILES:
        text = _read_manifest(root, name)
        if text is None:
            continue
        try:
            data = yaml.safe_load(text) or {}
        except yaml.YAMLError as e:
            out.unparseable(name, e)
            continue
        services = data.get("services") if isinstance(data, dict) else None
        if not isinstance(services, dict):
            continue
        if len(services) > 1:
            out.set("compose:multi_service")
        for svc in services.values():
            image = str(svc.get("image", "")) if isinstance(svc, dict) else ""
            if any(db in image for db in DATABASE_IMAGES):
                out.set("compose:database")


def _dockerfile(root: Path, out: _Collector) -> None:
    text = _read_manifest(root, "Dockerfile")
    if not text:
        return
    for line in text.splitlines():
        line = line.strip()
        if line.upper().startswith("FROM "):
            out.set("docker:base", line.split()[1])
            break


def _env_keys(root: Path, out: _Collector) -> None:
    for name in ENV_FILES:
        text = _read_manifest(root, name)
        if text is None:
            continue
        for line in text.splitlines():
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key = line.split("=", 1)[0].replace("export ", "").strip()
            # values are never copied into the bag
            if key:
                out.set(f"envvar:{key}")

    for fp, _ in iter_files(root):
        text = read_text(fp, limit_bytes=MANIFEST_LIMIT_BYTES)
        if not text:
            continue
        for m in ENV_USAGE.finditer(text):
            key = next((g for g in m.groups() if g), None)
            if key:
                out.set(f"envvar:{key}")


def _layout(root: Path, out: _Collector) -> None:
    files, dirs = list_root(root)
    for name in files:
        out.set(f"file:{name}")
    for name in dirs:
        out.set(f"dir:{name}")
    for candidate in STATIC_OUTPUT_DIRS:
        if (root / candidate / "index.html").is_file():
            out.set(f"static:{candidate}")


def extract_signals(app_root: str) -> SignalBag:
    """
    Build the signal bag for a checkout. Never executes repository code and
    never raises on malformed manifests.
    """
    root = Path(app_root)
    if not root.is_dir():
        raise FileNotFoundError(f"Repository checkout not found: {app_root}")

    out = _Collector()
    _layout(root, out)
    _package_json(root, out)
    _requirements_txt(root, out)
    _pyproject(root, out)
    _pipfile(root, out)
    _compose(root, out)
    _dockerfile(root, out)
    _env_keys(root, out)

    logger.debug(f"Extracted {len(out.signals)} signals from {app_root}")
    return SignalBag(signals=out.signals, caveats=tuple(out.caveats))
