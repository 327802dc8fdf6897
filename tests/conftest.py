from unittest.mock import Mock

import pytest

from autodeploy.analyzer import SignalBag, analyze_repo
from autodeploy.analyzer.detect import detect
from autodeploy.orchestrator import Orchestrator
from autodeploy.providers import CredentialCheck, ProviderAdapter, StrategyOutcome, StrategyResult
from autodeploy.state import MemoryDeploymentStore
from autodeploy.vault import CredentialStore, CredentialVault

MASTER_KEY = bytes(range(32))

REPO = "https://github.com/acme/shop"


class ScriptedAdapter(ProviderAdapter):
    """Adapter whose answers are queued up by the test."""

    name = "vercel"
    display_name = "Vercel"
    domain = "vercel.app"
    strategies = ("project-git-link", "git-source-deployment")

    def __init__(self, script=None, statuses=None, check=None, strategies=None):
        super().__init__(session=Mock(), timeout=1)
        if strategies is not None:
            self.strategies = tuple(strategies)
        self.script = {k: list(v) for k, v in (script or {}).items()}
        self.statuses = list(statuses or [])
        self.check = check or CredentialCheck(valid=True, identity="octocat")
        self.calls = []

    def _check_credential(self, secret):
        self.calls.append(("validate", secret))
        if isinstance(self.check, Exception):
            raise self.check
        return self.check

    def deploy(self, secret, request, strategy, context):
        self.calls.append(("deploy", strategy))
        outcome = self.script[strategy].pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def get_status(self, secret, deployment_ref):
        self.calls.append(("status", deployment_ref))
        status = self.statuses.pop(0)
        if isinstance(status, Exception):
            raise status
        return status

    def deploy_calls(self):
        return [c[1] for c in self.calls if c[0] == "deploy"]


class RecordingStore(MemoryDeploymentStore):
    """Keeps every status a record was saved with."""

    def __init__(self):
        super().__init__()
        self.history = {}

    def _dump(self, data):
        seen = self.history.setdefault(data["id"], [])
        if not seen or seen[-1] != data["status"]:
            seen.append(data["status"])
        super()._dump(data)


def fake_analyzer(source, branch=None, cache=None, **kwargs):
    """Detect Next.js for REPO without cloning it; local paths are analyzed for real."""
    if source == REPO:
        bag = SignalBag(signals={"dependency:next": True, "dir:app": True, "script:build": "next build"})
        return detect(bag), "abc123"
    return analyze_repo(source, branch=branch, cache=cache, **kwargs)


def success(url="https://shop.vercel.app", ref="dpl_1"):
    return StrategyResult(outcome=StrategyOutcome.SUCCESS, url=url, provider_ref=ref, logs=["created"])


@pytest.fixture
def adapter():
    return ScriptedAdapter()


@pytest.fixture
def store():
    return RecordingStore()


@pytest.fixture
def vault(adapter):
    return CredentialVault(store=CredentialStore(), master_key=MASTER_KEY, adapters={"vercel": adapter})


@pytest.fixture
def orchestrator(store, vault, adapter):
    orch = Orchestrator(store=store, vault=vault, adapters={"vercel": adapter}, call_timeout=5,
                        demo_latency=0, status_checks=3, status_interval=0, sleep=lambda s: None)
    yield orch
    orch.shutdown()


@pytest.fixture
def connected(vault):
    """Store a real-looking token for owner u1."""
    vault.connect("u1", "vercel", secret="tok_live_abc123")
    return vault
