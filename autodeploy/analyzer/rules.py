"""
Weighted detection rules.

Rules are evaluated in declaration order; when two fired rules reach the same
score the one declared first wins, so keep more specific frameworks above the
generic ones they overlap with.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple

from .spec import BuildConfiguration, SignalBag


@dataclass(frozen=True)
class Condition:
    signal: str
    weight: float = 0.0
    equals: Optional[str] = None

    def satisfied(self, bag: SignalBag) -> bool:
        value = bag.get(self.signal)
        if self.equals is not None:
            return value == self.equals
        return bool(value)


@dataclass(frozen=True)
class DetectionRule:
    id: str
    framework: str
    conditions: Tuple[Condition, ...]
    threshold: float
    provider: str
    build: BuildConfiguration
    exclusions: Tuple[Condition, ...] = field(default_factory=tuple)
    runtime: str = "node"
    # "static" frameworks only need a CDN, "server" ones need a long-running process
    kind: str = "static"

    def excluded(self, bag: SignalBag) -> Optional[Condition]:
        for cond in self.exclusions:
            if cond.satisfied(bag):
                return cond
        return None

    def score(self, bag: SignalBag) -> Tuple[float, Tuple[str, ...]]:
        total = 0.0
        matched = []
        for cond in self.conditions:
            if cond.satisfied(bag):
                total += cond.weight
                matched.append(cond.signal)
        return round(total, 4), tuple(matched)


def _c(signal: str, weight: float = 0.0) -> Condition:
    return Condition(signal=signal, weight=weight)


NPM_INSTALL = "npm install"

DEFAULT_RULES: Tuple[DetectionRule, ...] = (
    DetectionRule(
        id="docker",
        framework="Docker",
        conditions=(_c("file:Dockerfile", 1.0), _c("file:docker-compose.yml", 0.6),
                    _c("file:docker-compose.yaml", 0.6), _c("file:compose.yaml", 0.6)),
        threshold=0.6,
        provider="render",
        build=BuildConfiguration(build_command="docker build .", start_command=None),
        runtime="container",
        kind="server",
    ),
    DetectionRule(
        id="nextjs",
        framework="Next.js",
        conditions=(_c("dependency:next", 0.8), _c("file:next.config.js", 0.15),
                    _c("file:next.config.mjs", 0.15), _c("file:next.config.ts", 0.15),
                    _c("dir:app", 0.15), _c("dir:pages", 0.15)),
        threshold=0.8,
        provider="vercel",
        build=BuildConfiguration(install_command=NPM_INSTALL, build_command="npm run build",
                                 output_directory=".next", start_command="npm run start"),
        kind="hybrid",
    ),
    DetectionRule(
        id="nuxt",
        framework="Nuxt",
        conditions=(_c("dependency:nuxt", 0.8), _c("file:nuxt.config.js", 0.15),
                    _c("file:nuxt.config.ts", 0.15)),
        threshold=0.8,
        provider="vercel",
        build=BuildConfiguration(install_command=NPM_INSTALL, build_command="npm run build",
                                 output_directory=".output/public", start_command="node .output/server/index.mjs"),
        kind="hybrid",
    ),
    DetectionRule(
        id="gatsby",
        framework="Gatsby",
        conditions=(_c("dependency:gatsby", 0.8), _c("file:gatsby-config.js", 0.15),
                    _c("file:gatsby-config.ts", 0.15)),
        threshold=0.8,
        provider="netlify",
        build=BuildConfiguration(install_command=NPM_INSTALL, build_command="npm run build",
                                 output_directory="public"),
    ),
    DetectionRule(
        id="sveltekit",
        framework="SvelteKit",
        conditions=(_c("dependency:@sveltejs/kit", 0.8), _c("dependency:svelte", 0.1),
                    _c("file:svelte.config.js", 0.15)),
        threshold=0.8,
        provider="vercel",
        build=BuildConfiguration(install_command=NPM_INSTALL, build_command="npm run build",
                                 output_directory="build"),
        kind="hybrid",
    ),
    DetectionRule(
        id="vite",
        framework="Vite",
        conditions=(_c("dependency:vite", 0.7), _c("file:vite.config.js", 0.2),
                    _c("file:vite.config.ts", 0.2), _c("file:index.html", 0.05)),
        threshold=0.7,
        provider="netlify",
        build=BuildConfiguration(install_command=NPM_INSTALL, build_command="npm run build",
                                 output_directory="dist"),
        exclusions=(_c("dependency:next"), _c("dependency:nuxt"), _c("dependency:@sveltejs/kit")),
    ),
    DetectionRule(
        id="vue",
        framework="Vue.js",
        conditions=(_c("dependency:vue", 0.75), _c("dependency:@vue/cli-service", 0.15),
                    _c("file:vue.config.js", 0.1)),
        threshold=0.75,
        provider="netlify",
        build=BuildConfiguration(install_command=NPM_INSTALL, build_command="npm run build",
                                 output_directory="dist"),
        exclusions=(_c("dependency:nuxt"), _c("dependency:vite")),
    ),
    DetectionRule(
        id="react",
        framework="React",
        conditions=(_c("dependency:react", 0.75), _c("dependency:react-scripts", 0.15),
                    _c("dependency:react-dom", 0.05)),
        threshold=0.75,
        provider="netlify",
        build=BuildConfiguration(install_command=NPM_INSTALL, build_command="npm run build",
                                 output_directory="build"),
        exclusions=(_c("dependency:next"), _c("dependency:gatsby"), _c("dependency:vite")),
    ),
    DetectionRule(
        id="express",
        framework="Express.js",
        conditions=(_c("dependency:express", 0.85), _c("file:server.js", 0.1),
                    _c("file:app.js", 0.05), _c("script:start", 0.05)),
        threshold=0.85,
        provider="render",
        build=BuildConfiguration(install_command=NPM_INSTALL, start_command="npm start"),
        exclusions=(_c("dependency:next"),),
        kind="server",
    ),
    DetectionRule(
        id="django",
        framework="Django",
        conditions=(_c("dependency:django", 0.8), _c("file:manage.py", 0.3)),
        threshold=0.8,
        provider="render",
        build=BuildConfiguration(install_command="pip install -r requirements.txt",
                                 build_command="python manage.py collectstatic --noinput",
                                 start_command="gunicorn wsgi:application --bind 0.0.0.0:$PORT"),
        runtime="python",
        kind="server",
    ),
    DetectionRule(
        id="fastapi",
        framework="FastAPI",
        conditions=(_c("dependency:fastapi", 0.85), _c("file:main.py", 0.1),
                    _c("dependency:uvicorn", 0.05)),
        threshold=0.85,
        provider="render",
        build=BuildConfiguration(install_command="pip install -r requirements.txt",
                                 start_command="uvicorn main:app --host 0.0.0.0 --port $PORT"),
        runtime="python",
        kind="server",
    ),
    DetectionRule(
        id="flask",
        framework="Flask",
        conditions=(_c("dependency:flask", 0.85), _c("file:app.py", 0.1),
                    _c("dependency:gunicorn", 0.05)),
        threshold=0.85,
        provider="render",
        build=BuildConfiguration(install_command="pip install -r requirements.txt",
                                 start_command="gunicorn app:app --bind 0.0.0.0:$PORT"),
        runtime="python",
        kind="server",
    ),
    DetectionRule(
        id="go",
        framework="Go",
        conditions=(_c("file:go.mod", 0.75), _c("file:main.go", 0.15)),
        threshold=0.75,
        provider="render",
        build=BuildConfiguration(build_command="go build -o app .", start_command="./app"),
        runtime="go",
        kind="server",
    ),
    DetectionRule(
        id="static-html",
        framework="Static Site",
        conditions=(_c("file:index.html", 0.7),),
        threshold=0.7,
        provider="netlify",
        build=BuildConfiguration(output_directory="."),
        exclusions=(_c("file:package.json"), _c("file:requirements.txt")),
        runtime="static",
    ),
)


# Coarse fallbacks when nothing fires, checked in order.
GENERIC_RUNTIMES: Tuple[Tuple[Tuple[str, ...], str, float, str, BuildConfiguration, str], ...] = (
    (("file:package.json",), "Node.js", 0.6, "render",
     BuildConfiguration(install_command=NPM_INSTALL, start_command="npm start"), "server"),
    (("file:requirements.txt", "file:pyproject.toml", "file:Pipfile"), "Python", 0.5, "render",
     BuildConfiguration(install_command="pip install -r requirements.txt", start_command="python app.py"), "server"),
    (("file:go.mod",), "Go", 0.5, "render",
     BuildConfiguration(build_command="go build -o app .", start_command="./app"), "server"),
)

STATIC_FALLBACK = ("Static Site", 0.4, "netlify", BuildConfiguration(output_directory="."))
