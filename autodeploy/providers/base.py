"""
Provider adapter interface and the shared HTTP plumbing.
"""

import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from autodeploy.analyzer.spec import BuildConfiguration
from autodeploy.errors import (
    CredentialInvalid,
    ProviderFatal,
    ProviderRecoverable,
    ProviderTimeout,
    ValidationError,
)
from autodeploy.settings import get_provider_timeout

logger = logging.getLogger(__name__)

GITHUB_URL = re.compile(r"github\.com[/:]([^/\s]+)/([^/\s#?]+)")

DEMO_MARKERS = ("", "demo")

DEMO_IDENTITY = "demo-user"


def is_demo_secret(secret: Optional[str], provider: str) -> bool:
    """Placeholder tokens that select simulated deployments."""
    value = (secret or "").strip()
    return value in DEMO_MARKERS or value == f"demo-{provider}-token"


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9-]+", "-", (name or "").lower()).strip("-")
    return re.sub(r"-{2,}", "-", slug) or "app"


@dataclass(frozen=True)
class RepositoryRef:
    owner: str
    name: str
    url: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @classmethod
    def parse(cls, url: str) -> "RepositoryRef":
        """
        Parse a GitHub repository URL (https or ssh form).

        Raises:
            ValidationError: If the URL does not name a GitHub repository
        """
        m = GITHUB_URL.search(url or "")
        if not m:
            raise ValidationError(f"Invalid GitHub repository URL: {url}",
                                  hint="Use a URL like https://github.com/owner/repo")
        owner, name = m.group(1), m.group(2)
        if name.endswith(".git"):
            name = name[:-4]
        return cls(owner=owner, name=name, url=f"https://github.com/{owner}/{name}")


@dataclass(frozen=True)
class DeployRequest:
    """Everything a strategy needs to know about what to deploy."""
    project_slug: str
    repository: RepositoryRef
    branch: str
    commit: str
    build_config: BuildConfiguration


@dataclass
class CredentialCheck:
    valid: bool
    identity: Optional[str] = None
    error: Optional[str] = None


class StrategyOutcome(str, Enum):
    SUCCESS = "success"
    # accepted by the provider, build still running
    PENDING = "pending"
    NEEDS_SETUP = "needs_setup"


@dataclass
class StrategyResult:
    outcome: StrategyOutcome
    url: Optional[str] = None
    provider_ref: Optional[str] = None
    logs: List[str] = field(default_factory=list)
    instructions: List[str] = field(default_factory=list)


@dataclass
class ProviderStatus:
    state: str  # "ready" | "building" | "error"
    url: Optional[str] = None
    message: Optional[str] = None

    @property
    def ready(self) -> bool:
        return self.state == "ready"

    @property
    def failed(self) -> bool:
        return self.state == "error"


class ProviderAdapter(ABC):
    """
    One hosting provider. Subclasses declare their ordered fallback chain in
    ``strategies`` and implement one ``_strategy_<name>`` method per entry.
    """

    name: str = ""
    display_name: str = ""
    domain: str = ""
    api_base: str = ""
    strategies: Tuple[str, ...] = ()

    def __init__(self, session: Optional[requests.Session] = None, timeout: Optional[float] = None):
        self.session = session or requests.Session()
        self.timeout = timeout if timeout is not None else get_provider_timeout()

    def validate_credential(self, secret: str) -> CredentialCheck:
        """
        Check a token against the provider. Demo markers are always valid and
        never reach the network.
        """
        if is_demo_secret(secret, self.name):
            return CredentialCheck(valid=True, identity=DEMO_IDENTITY)
        return self._check_credential(secret)

    @abstractmethod
    def _check_credential(self, secret: str) -> CredentialCheck:
        pass

    @abstractmethod
    def get_status(self, secret: str, deployment_ref: str) -> ProviderStatus:
        pass

    @property
    def supports_refresh(self) -> bool:
        return False

    def refresh_credential(self, secret: str) -> Optional[str]:
        """Exchange a credential for a fresh one. None when not supported."""
        return None

    def deploy(self, secret: str, request: DeployRequest, strategy: str,
               context: Dict[str, Any]) -> StrategyResult:
        """
        Run one strategy of the fallback chain.

        Args:
            secret: Decrypted provider token
            request: What to deploy
            strategy: Entry of ``strategies``
            context: Scratch state shared by the strategies of one run

        Raises:
            CredentialInvalid: Token rejected
            ProviderRecoverable: This strategy failed, the next one may work
            ProviderTimeout: Transient failure
            ProviderFatal: Unknown strategy or unrecoverable provider error
        """
        if strategy not in self.strategies:
            raise ProviderFatal(f"{self.display_name} has no strategy '{strategy}'")
        handler = getattr(self, "_strategy_" + strategy.replace("-", "_"))
        return handler(secret, request, context)

    def demo_url(self, project_slug: str) -> str:
        return f"https://{slugify(project_slug)}-demo.{self.domain}"

    def simulate(self, project_slug: str, strategy: str, latency: float = 0.0,
                 sleep: Callable[[float], None] = time.sleep) -> StrategyResult:
        """Synthetic success used for demo credentials. Makes no network call."""
        if latency > 0:
            sleep(latency)
        return StrategyResult(
            outcome=StrategyOutcome.SUCCESS,
            url=self.demo_url(project_slug),
            provider_ref=f"demo-{slugify(project_slug)}",
            logs=[f"Simulated {strategy} on {self.display_name}"],
        )

    # HTTP helpers

    def _headers(self, secret: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {secret}", "Content-Type": "application/json"}

    def _request(self, method: str, path: str, secret: str, **kwargs) -> Dict[str, Any]:
        headers = self._headers(secret)
        headers.update(kwargs.pop("headers", {}) or {})
        url = f"{self.api_base}{path}"
        try:
            response = self.session.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.Timeout as e:
            raise ProviderTimeout(f"{self.display_name} API timed out on {method} {path}: {e.__class__.__name__}")
        except requests.ConnectionError as e:
            raise ProviderTimeout(f"{self.display_name} API unreachable on {method} {path}: {e.__class__.__name__}")
        except requests.RequestException as e:
            raise ProviderRecoverable(f"{self.display_name} request failed on {method} {path}: {e.__class__.__name__}")

        raise_for_provider_status(response, f"{self.display_name} {method} {path}")
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {"items": body}


def _error_message(response) -> str:
    try:
        body = response.json()
    except ValueError:
        return (response.text or "")[:200]
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if body.get("message"):
            return str(body["message"])
        if isinstance(err, str):
            return err
    return ""


def raise_for_provider_status(response, what: str, auth: bool = True) -> None:
    """
    Map an HTTP response onto the provider failure classes.

    Args:
        response: requests Response
        what: Short description of the call for error messages
        auth: False for calls that do not carry the provider token, so an
            authorization failure there is not blamed on the credential
    """
    code = response.status_code
    if code < 400:
        return
    detail = _error_message(response)
    message = f"{what} returned {code}" + (f": {detail}" if detail else "")
    if code in (401, 403) and auth:
        raise CredentialInvalid(message)
    if code == 429 or code >= 500:
        raise ProviderTimeout(message)
    raise ProviderRecoverable(message)
