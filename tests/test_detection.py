from autodeploy.analyzer import SignalBag, detect
from autodeploy.analyzer.rules import Condition, DetectionRule
from autodeploy.analyzer.spec import BuildConfiguration


class TestRules:
    def test_nextjs_with_app_dir(self):
        result = detect(SignalBag.of("dependency:next", "dir:app"))
        assert result.framework == "Next.js"
        assert result.confidence >= 0.9
        assert result.rule_id == "nextjs"
        assert result.recommended_provider == "vercel"
        assert "framework affinity" in result.providers[0].rationale

    def test_dockerfile_alone(self):
        result = detect(SignalBag.of("file:Dockerfile"))
        assert result.framework == "Docker"
        assert result.confidence == 1.0
        assert result.needs.long_running is True
        assert result.recommended_provider == "render"

    def test_confidence_clamped(self):
        bag = SignalBag.of("file:Dockerfile", "file:docker-compose.yml")
        assert detect(bag).confidence == 1.0

    def test_exclusion_disqualifies_react(self):
        # react + gatsby: react is excluded, gatsby wins
        result = detect(SignalBag.of("dependency:react", "dependency:gatsby"))
        assert result.framework == "Gatsby"
        assert any("rule 'react' excluded by dependency:gatsby" in r for r in result.rationale)

    def test_tie_goes_to_first_declared(self):
        build = BuildConfiguration()
        rules = (
            DetectionRule(id="first", framework="A", conditions=(Condition("file:x", 0.8),),
                          threshold=0.5, provider="netlify", build=build),
            DetectionRule(id="second", framework="B", conditions=(Condition("file:x", 0.8),),
                          threshold=0.5, provider="vercel", build=build),
        )
        assert detect(SignalBag.of("file:x"), rules=rules).rule_id == "first"

    def test_strictly_greater_score_wins(self):
        build = BuildConfiguration()
        rules = (
            DetectionRule(id="low", framework="A", conditions=(Condition("file:x", 0.6),),
                          threshold=0.5, provider="netlify", build=build),
            DetectionRule(id="high", framework="B", conditions=(Condition("file:x", 0.7),),
                          threshold=0.5, provider="vercel", build=build),
        )
        assert detect(SignalBag.of("file:x"), rules=rules).rule_id == "high"

    def test_detect_is_pure(self):
        bag = SignalBag.of("dependency:react", "dependency:react-scripts", "file:package.json",
                           "script:build", "envvar:API_URL")
        assert detect(bag) == detect(bag)


class TestFallback:
    def test_package_json_without_framework(self):
        result = detect(SignalBag.of("file:package.json"))
        assert result.framework == "Node.js"
        assert result.fallback_used is True
        assert result.rule_id is None
        assert result.confidence <= 0.6

    def test_python_manifest(self):
        result = detect(SignalBag.of("file:requirements.txt"))
        assert result.framework == "Python"
        assert result.confidence <= 0.6

    def test_empty_bag_is_static(self):
        result = detect(SignalBag.of())
        assert result.framework == "Static Site"
        assert result.confidence <= 0.6


class TestBuildConfig:
    def test_yarn_lockfile(self):
        bag = SignalBag.of("dependency:next", "file:package.json", "file:yarn.lock", "script:build")
        build = detect(bag).build_config
        assert build.install_command == "yarn install"
        assert build.build_command == "yarn build"

    def test_missing_build_script_drops_build(self):
        bag = SignalBag.of("dependency:react", "file:package.json")
        result = detect(bag)
        assert result.build_config.build_command is None
        assert any("no build script" in r for r in result.rationale)

    def test_merged_override(self):
        base = BuildConfiguration(install_command="npm ci", build_command="npm run build")
        merged = base.merged(BuildConfiguration(build_command="npm run export"))
        assert merged.install_command == "npm ci"
        assert merged.build_command == "npm run export"


class TestNeeds:
    def test_database_from_envvar(self):
        result = detect(SignalBag.of("dependency:express", "envvar:DATABASE_URL"))
        assert result.needs.database is True
        assert result.recommended_provider == "render"

    def test_static_site_needs(self):
        result = detect(SignalBag.of("file:index.html"))
        assert result.framework == "Static Site"
        assert result.needs.static_only is True
