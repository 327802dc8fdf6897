from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from autodeploy.selector import InfraNeeds, rank_providers

from .rules import DEFAULT_RULES, GENERIC_RUNTIMES, STATIC_FALLBACK, DetectionRule
from .spec import BuildConfiguration, DetectionResult, SignalBag

DATABASE_DEPENDENCIES = (
    "pg", "pg-promise", "mysql2", "mongoose", "mongodb", "prisma", "@prisma/client",
    "sequelize", "typeorm", "knex", "redis", "ioredis",
    "psycopg2", "psycopg2-binary", "psycopg", "mysqlclient", "pymysql", "sqlalchemy",
    "motor", "mongoengine", "django", "peewee", "asyncpg",
)

DATABASE_ENVVARS = (
    "DATABASE_URL", "POSTGRES_URL", "PGHOST", "MYSQL_HOST", "MONGODB_URI", "MONGO_URL",
    "MONGO_URI", "REDIS_URL",
)

FALLBACK_CONFIDENCE_CAP = 0.6


def infer_needs(bag: SignalBag, kind: str) -> InfraNeeds:
    database = (
        any(bag.has(f"dependency:{dep}") for dep in DATABASE_DEPENDENCIES)
        or any(bag.has(f"envvar:{var}") for var in DATABASE_ENVVARS)
        or bag.has("compose:database")
    )
    return InfraNeeds(
        database=database,
        long_running=kind == "server",
        static_only=kind == "static" and not database,
    )


def _node_package_manager(bag: SignalBag) -> Tuple[str, str, str]:
    """Return (install, run-prefix, start) commands for the detected lockfile."""
    if bag.has("file:pnpm-lock.yaml"):
        return "pnpm install", "pnpm run", "pnpm start"
    if bag.has("file:yarn.lock"):
        return "yarn install", "yarn", "yarn start"
    if bag.has("file:package-lock.json"):
        return "npm ci", "npm run", "npm start"
    return "npm install", "npm run", "npm start"


def refine_build_config(build: BuildConfiguration, runtime: str, bag: SignalBag,
                        notes: List[str]) -> BuildConfiguration:
    install = build.install_command
    command = build.build_command
    start = build.start_command

    if runtime == "node":
        pm_install, pm_run, pm_start = _node_package_manager(bag)
        if install and install.startswith("npm "):
            install = pm_install
        if command and command.startswith("npm run "):
            if bag.has("file:package.json") and not bag.has("script:build"):
                notes.append("package.json has no build script; skipping build step")
                command = None
            else:
                command = f"{pm_run} {command[len('npm run '):]}"
        if start in ("npm start", "npm run start"):
            start = pm_start
    elif runtime == "python" and install == "pip install -r requirements.txt":
        if not bag.has("file:requirements.txt"):
            if bag.has("file:Pipfile"):
                install = "pipenv install --deploy"
            elif bag.has("file:pyproject.toml"):
                install = "pip install ."

    return BuildConfiguration(
        install_command=install,
        build_command=command,
        output_directory=build.output_directory,
        start_command=start,
    )


def _evaluate(rules: Sequence[DetectionRule], bag: SignalBag,
              rationale: List[str]) -> Tuple[Optional[DetectionRule], float]:
    winner: Optional[DetectionRule] = None
    best = 0.0
    winner_matched: Tuple[str, ...] = ()
    fired: List[str] = []
    for rule in rules:
        score, matched = rule.score(bag)
        excluded_by = rule.excluded(bag)
        if excluded_by is not None:
            if score > 0:
                rationale.append(f"rule '{rule.id}' excluded by {excluded_by.signal}")
            continue
        if score < rule.threshold:
            continue
        fired.append(f"{rule.id}={score:.2f}")
        # strictly greater: earlier declarations keep ties
        if winner is None or score > best:
            winner, best = rule, score
            winner_matched = matched
    if winner is not None:
        rationale.insert(0, f"rule '{winner.id}' fired with score {best:.2f} "
                            f"(threshold {winner.threshold:.2f}) on {', '.join(winner_matched)}")
        if len(fired) > 1:
            rationale.append(f"fired rules: {', '.join(fired)}")
    return winner, best


def _generic_fallback(bag: SignalBag, rationale: List[str]):
    for signals, framework, confidence, provider, build, kind in GENERIC_RUNTIMES:
        hit = next((s for s in signals if bag.has(s)), None)
        if hit:
            rationale.append(f"no rule fired; generic {framework} runtime inferred from {hit}")
            runtime = {"Node.js": "node", "Python": "python", "Go": "go"}.get(framework, "unknown")
            return framework, min(confidence, FALLBACK_CONFIDENCE_CAP), provider, build, kind, runtime
    framework, confidence, provider, build = STATIC_FALLBACK
    rationale.append("no rule fired and no manifest found; assuming a static site")
    return framework, min(confidence, FALLBACK_CONFIDENCE_CAP), provider, build, "static", "static"


def detect(bag: SignalBag, rules: Sequence[DetectionRule] = DEFAULT_RULES,
           cost_preference: str = "low") -> DetectionResult:
    """
    Evaluate weighted rules against a signal bag.

    Pure and deterministic: the same bag and rule set always give the same
    result, including the rationale strings and the tie-break winner.
    """
    rationale: List[str] = []
    winner, score = _evaluate(rules, bag, rationale)

    if winner is not None:
        framework = winner.framework
        confidence = max(0.0, min(1.0, score))
        provider = winner.provider
        build = winner.build
        kind = winner.kind
        runtime = winner.runtime
        rule_id: Optional[str] = winner.id
        fallback_used = False
    else:
        framework, confidence, provider, build, kind, runtime = _generic_fallback(bag, rationale)
        rule_id = None
        fallback_used = True

    notes: List[str] = []
    build = refine_build_config(build, runtime, bag, notes)
    rationale.extend(notes)

    needs = infer_needs(bag, kind)
    if needs.database:
        rationale.append("database requirement inferred from dependencies or environment")

    providers = rank_providers(framework, needs, preferred=provider, cost_preference=cost_preference)

    return DetectionResult(
        framework=framework,
        confidence=round(confidence, 4),
        rule_id=rule_id,
        build_config=build,
        needs=needs,
        providers=providers,
        rationale=tuple(rationale),
        caveats=tuple(bag.caveats),
        env_vars=tuple(bag.with_prefix("envvar:")),
        fallback_used=fallback_used,
    )
