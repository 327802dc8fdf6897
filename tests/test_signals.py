import json
from pathlib import Path

import pytest

from autodeploy.analyzer import analyze_checkout, analyze_repo, emit_report, extract_signals, DetectionCache


def _write(root: Path, name: str, text: str) -> None:
    path = root / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)


class TestExtractSignals:
    def test_package_json(self, tmp_path):
        _write(tmp_path, "package.json", json.dumps({
            "dependencies": {"next": "14.0.0", "react": "18.2.0"},
            "scripts": {"build": "next build"},
        }))
        (tmp_path / "app").mkdir()
        bag = extract_signals(str(tmp_path))
        assert bag.has("dependency:next")
        assert bag.get("script:build") == "next build"
        assert bag.has("dir:app")
        assert bag.has("file:package.json")

    def test_malformed_package_json_is_caveat(self, tmp_path):
        _write(tmp_path, "package.json", "{not json")
        bag = extract_signals(str(tmp_path))
        assert not bag.has("file:package.json")
        assert any("package.json" in c for c in bag.caveats)

    @pytest.mark.parametrize("name,text", [
        ("pyproject.toml", 'project = "oops"\n'),
        ("pyproject.toml", '[tool]\npoetry = ["x"]\n'),
        ("pyproject.toml", '[project]\ndependencies = "flask"\n'),
        ("pyproject.toml", '[tool.poetry]\ndependencies = 3\n'),
        ("Pipfile", 'packages = ["flask"]\n'),
    ])
    def test_wrong_shaped_toml_is_caveat(self, tmp_path, name, text):
        _write(tmp_path, name, text)
        bag = extract_signals(str(tmp_path))
        assert not bag.has(f"file:{name}")
        assert any(name in c for c in bag.caveats)
        assert not bag.with_prefix("dependency:")

    def test_pyproject_dependencies(self, tmp_path):
        _write(tmp_path, "pyproject.toml",
               '[project]\ndependencies = ["FastAPI>=0.110"]\n\n'
               '[tool.poetry.dependencies]\npython = "^3.11"\nuvicorn = "*"\n')
        bag = extract_signals(str(tmp_path))
        assert bag.has("dependency:fastapi")
        assert bag.has("dependency:uvicorn")
        assert not bag.has("dependency:python")
        assert not bag.caveats

    def test_requirements_and_env(self, tmp_path):
        _write(tmp_path, "requirements.txt", "Flask==2.3.0\n# comment\npsycopg2-binary\n")
        _write(tmp_path, ".env.example", "DATABASE_URL=postgres://user:pw@db/app\nexport SECRET_KEY=abc\n")
        _write(tmp_path, "app.py", "import os\nkey = os.getenv('STRIPE_KEY')\n")
        bag = extract_signals(str(tmp_path))
        assert bag.has("dependency:flask")
        assert bag.has("dependency:psycopg2-binary")
        assert bag.has("envvar:DATABASE_URL")
        assert bag.has("envvar:SECRET_KEY")
        assert bag.has("envvar:STRIPE_KEY")
        # values never reach the bag
        assert "postgres://user:pw@db/app" not in [str(v) for v in bag.signals.values()]

    def test_compose_services(self, tmp_path):
        _write(tmp_path, "docker-compose.yml",
               "services:\n  web:\n    build: .\n  db:\n    image: postgres:16\n")
        bag = extract_signals(str(tmp_path))
        assert bag.has("compose:multi_service")
        assert bag.has("compose:database")

    def test_missing_directory(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            extract_signals(str(tmp_path / "nope"))


class TestAnalyze:
    def test_flask_app(self, tmp_path):
        _write(tmp_path, "requirements.txt", "flask==2.3.0\n")
        _write(tmp_path, "app.py", "from flask import Flask\napp = Flask(__name__)\n")
        result = analyze_checkout(str(tmp_path))
        assert result.framework == "Flask"
        assert result.build_config.install_command == "pip install -r requirements.txt"

    def test_analyze_repo_local_path_cached(self, tmp_path):
        src = tmp_path / "src"
        _write(src, "index.html", "<h1>hi</h1>")
        cache = DetectionCache()
        first, commit = analyze_repo(str(src), cache=cache, workspace_root=str(tmp_path))
        second, commit2 = analyze_repo(str(src), cache=cache, workspace_root=str(tmp_path))
        assert first.framework == "Static Site"
        assert commit == commit2
        assert second is first
        assert len(cache) == 1

    def test_emit_report(self, tmp_path):
        _write(tmp_path / "app", "Dockerfile", "FROM python:3.12-slim\n")
        result = analyze_checkout(str(tmp_path / "app"))
        emit_report(result, str(tmp_path / "out"))
        data = json.loads((tmp_path / "out" / "detection.json").read_text())
        assert data["framework"] == "Docker"
        assert "Framework: Docker" in (tmp_path / "out" / "analysis.md").read_text()
