"""
Deployment orchestrator.

Drives one deployment record through credential validation and the provider's
strategy chain until it reaches a terminal status. Progress lands in the
record's own log; the process log only gets a summary line per run.
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from contextlib import contextmanager
from typing import Any, Callable, Dict, List, Optional

from .analyzer.spec import BuildConfiguration
from .errors import (
    AutoDeployError,
    ConflictError,
    CredentialInvalid,
    CredentialMissing,
    NoPriorDeployment,
    ProviderFatal,
    ProviderRecoverable,
    ProviderTimeout,
    ValidationError,
    VaultError,
)
from .events import LogLevel, parse_ts
from .ids import is_valid_deployment_id, new_deployment_id
from .providers import (
    DeployRequest,
    ProviderAdapter,
    RepositoryRef,
    StrategyOutcome,
    StrategyResult,
    default_adapters,
    get_adapter,
    slugify,
)
from .redact import redact_string
from .settings import get_demo_latency, get_provider_timeout, get_status_checks, get_status_interval
from .state import DeploymentRecord, DeploymentStore, FileDeploymentStore
from .status import DeploymentStatus
from .vault import CredentialVault

logger = logging.getLogger(__name__)


class Orchestrator:
    def __init__(self, store: Optional[DeploymentStore] = None, vault: Optional[CredentialVault] = None,
                 adapters: Optional[Dict[str, ProviderAdapter]] = None,
                 call_timeout: Optional[float] = None, demo_latency: Optional[float] = None,
                 status_checks: Optional[int] = None, status_interval: Optional[float] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.store = store if store is not None else FileDeploymentStore()
        self.adapters = adapters if adapters is not None else default_adapters()
        self.vault = vault if vault is not None else CredentialVault(adapters=self.adapters)
        self.call_timeout = call_timeout if call_timeout is not None else get_provider_timeout()
        self.demo_latency = demo_latency if demo_latency is not None else get_demo_latency()
        self.status_checks = status_checks if status_checks is not None else get_status_checks()
        self.status_interval = status_interval if status_interval is not None else get_status_interval()
        self._sleep = sleep
        self._active = set()
        self._active_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix="autodeploy-call")

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False)

    # Submission

    def submit(self, project_id: str, owner_id: str, repository: str, provider: str,
               branch: str = "main", commit: str = "latest",
               build_config: Optional[Dict[str, Any]] = None,
               deployment_id: Optional[str] = None) -> DeploymentRecord:
        """
        Validate a deployment request and persist it as a queued record.

        Raises:
            ValidationError: Bad provider, repository URL, project or id
            ConflictError: The id is already taken
        """
        if not project_id:
            raise ValidationError("project_id is required")
        if not owner_id:
            raise ValidationError("owner_id is required")
        adapter = get_adapter(self.adapters, provider)
        repo = RepositoryRef.parse(repository)
        if deployment_id is None:
            deployment_id = new_deployment_id()
        elif not is_valid_deployment_id(deployment_id):
            raise ValidationError(f"Invalid deployment ID: {deployment_id}",
                                  hint="IDs look like d-20250101-120000-ab12")

        record = DeploymentRecord(
            id=deployment_id,
            project_id=project_id,
            owner_id=owner_id,
            provider=adapter.name,
            repository=repo.url,
            branch=branch or "main",
            commit=commit or "latest",
            build_config=(BuildConfiguration.from_dict(build_config) or BuildConfiguration()).to_dict(),
        )
        record.log(LogLevel.INFO, f"Queued {adapter.display_name} deployment of {repo.full_name}@{record.branch}")
        self.store.create(record)
        logger.info(f"Queued deployment {deployment_id} for project {project_id} on {adapter.name}")
        return record

    def deploy(self, *args, **kwargs) -> DeploymentRecord:
        """Submit and run synchronously."""
        record = self.submit(*args, **kwargs)
        return self.run(record.id)

    @contextmanager
    def _claim(self, deployment_id: str):
        with self._active_lock:
            if deployment_id in self._active:
                raise ConflictError(f"Deployment {deployment_id} is already running")
            self._active.add(deployment_id)
        try:
            yield
        finally:
            with self._active_lock:
                self._active.discard(deployment_id)

    def run(self, deployment_id: str) -> DeploymentRecord:
        """
        Drive a queued record to a terminal status.

        Raises:
            NotFoundError: Unknown id
            ConflictError: Another run owns the id, or the record already finished
        """
        with self._claim(deployment_id):
            record = self.store.get(deployment_id)
            if record.status != DeploymentStatus.QUEUED:
                raise ConflictError(f"Deployment {deployment_id} is {record.status.value}, not queued")
            try:
                self._drive(record)
            except Exception as e:
                logger.exception(f"Deployment {deployment_id} crashed")
                if not record.terminal:
                    code = e.code if isinstance(e, AutoDeployError) else "internal_error"
                    if record.status == DeploymentStatus.QUEUED:
                        # queued has no direct edge to failed
                        record.transition(DeploymentStatus.VALIDATING_CREDENTIAL)
                        self.store.save(record)
                    self._finish(record, DeploymentStatus.FAILED, code, f"Unexpected error: {e.__class__.__name__}")
        logger.info(f"Deployment {deployment_id} finished as {record.status.value}"
                    + (f" ({record.error_code})" if record.error_code else ""))
        return record

    # State machine

    def _wait(self, future: Future):
        try:
            return future.result(timeout=self.call_timeout)
        except FutureTimeout:
            raise ProviderTimeout(f"Provider call exceeded {self.call_timeout:g}s")

    def _call(self, fn: Callable, *args):
        return self._wait(self._executor.submit(fn, *args))

    def _cancelled(self, record: DeploymentRecord) -> bool:
        if self.store.get(record.id).cancel_requested:
            record.cancel_requested = True
        return record.cancel_requested

    def _finish(self, record: DeploymentRecord, status: DeploymentStatus, code: Optional[str],
                reason: str, level: LogLevel = LogLevel.ERROR) -> None:
        record.error_code = code
        record.reason = reason
        record.transition(status, reason, level=level)
        self.store.save(record)

    def _drive(self, record: DeploymentRecord) -> None:
        adapter = get_adapter(self.adapters, record.provider)

        record.transition(DeploymentStatus.VALIDATING_CREDENTIAL,
                          f"Validating {adapter.display_name} credential")
        self.store.save(record)
        if self._cancelled(record):
            self._finish(record, DeploymentStatus.FAILED, "cancelled", "Deployment cancelled before validation")
            return

        if not self._validate(record, adapter):
            return

        request = DeployRequest(
            project_slug=slugify(record.project_id),
            repository=RepositoryRef.parse(record.repository),
            branch=record.branch,
            commit=record.commit,
            build_config=BuildConfiguration.from_dict(record.build_config) or BuildConfiguration(),
        )
        context: Dict[str, Any] = {}
        failures: List[str] = []
        last_code = None
        total = len(adapter.strategies)

        for index, strategy in enumerate(adapter.strategies, start=1):
            if self._cancelled(record):
                self._finish(record, DeploymentStatus.FAILED, "cancelled",
                             f"Deployment cancelled before strategy {strategy}")
                return

            record.strategy = strategy
            record.attempts.append(strategy)
            record.transition(DeploymentStatus.ATTEMPTING, f"Attempting strategy {index}/{total}: {strategy}")
            self.store.save(record)

            error: Optional[AutoDeployError] = None
            message = ""
            result: Optional[StrategyResult] = None
            try:
                with self.vault.open_secret(record.owner_id, record.provider) as handle:
                    try:
                        result = self._attempt(adapter, handle.value, request, strategy, context, record)
                    except AutoDeployError as e:
                        error = e
                        message = redact_string(e.message, (handle.value,))
            except (CredentialMissing, VaultError) as e:
                error, message = e, e.message

            if error is None:
                self._settle(record, result)
                return

            if isinstance(error, CredentialMissing):
                self._finish(record, DeploymentStatus.NEEDS_SETUP, error.code, message, level=LogLevel.WARNING)
                return
            if isinstance(error, (CredentialInvalid, ProviderFatal, VaultError)):
                self._finish(record, DeploymentStatus.FAILED, error.code, f"{strategy}: {message}")
                return
            if not isinstance(error, ProviderRecoverable):
                self._finish(record, DeploymentStatus.FAILED, error.code, f"{strategy}: {message}")
                return

            failures.append(f"{strategy}: {message}")
            last_code = error.code
            next_hint = "; falling back to next strategy" if index < total else ""
            record.log(LogLevel.WARNING, f"Strategy {strategy} failed: {message}{next_hint}")
            self.store.save(record)

        self._finish(record, DeploymentStatus.FAILED, last_code or "provider_recoverable",
                     f"All {total} strategies failed ({'; '.join(failures)})")

    def _validate(self, record: DeploymentRecord, adapter: ProviderAdapter) -> bool:
        try:
            with self.vault.open_secret(record.owner_id, record.provider) as handle:
                # decided once here; later attempts never re-derive it
                record.simulated = handle.demo
                if handle.demo:
                    record.log(LogLevel.WARNING, "Demo credential connected; this deployment is simulated")
                else:
                    try:
                        check = self._retrying(record, "credential validation",
                                               adapter.validate_credential, handle.value)
                    except (ProviderRecoverable, ProviderFatal) as e:
                        self._finish(record, DeploymentStatus.FAILED, e.code,
                                     redact_string(f"Credential validation failed: {e.message}", (handle.value,)))
                        return False
                    if not check.valid:
                        raise CredentialInvalid(check.error or f"{adapter.display_name} rejected the credential")
                    record.log(LogLevel.SUCCESS, f"Credential valid for {check.identity or 'account'}")
        except CredentialMissing as e:
            self._finish(record, DeploymentStatus.NEEDS_SETUP, e.code,
                         f"No {adapter.display_name} credential connected", level=LogLevel.WARNING)
            return False
        except (CredentialInvalid, VaultError) as e:
            self._finish(record, DeploymentStatus.FAILED, e.code, e.message)
            return False
        self.store.save(record)
        return True

    def _retrying(self, record: DeploymentRecord, what: str, fn: Callable, *args):
        """
        Run an adapter call with one retry on ProviderTimeout. A call that is
        still running when the bound expires is waited on once more, never
        issued a second time.
        """
        future = self._executor.submit(fn, *args)
        try:
            return self._wait(future)
        except ProviderTimeout as e:
            if not (future.done() and future.exception() is e):
                record.log(LogLevel.WARNING, f"{what} still in flight after {self.call_timeout:g}s; "
                                             f"waiting once more instead of repeating the call")
                self.store.save(record)
                return self._wait(future)
            record.log(LogLevel.WARNING, f"{what} hit a transient error ({e.message}); retrying once")
            self.store.save(record)
            return self._call(fn, *args)

    def _attempt(self, adapter: ProviderAdapter, secret: str, request: DeployRequest, strategy: str,
                 context: Dict[str, Any], record: DeploymentRecord) -> StrategyResult:
        if record.simulated:
            result = self._call(adapter.simulate, request.project_slug, strategy, self.demo_latency, self._sleep)
        else:
            result = self._retrying(record, strategy, adapter.deploy, secret, request, strategy, context)
        for line in result.logs:
            record.log(LogLevel.INFO, line, (secret,))
        if result.outcome == StrategyOutcome.PENDING:
            result = self._await_build(adapter, secret, result, record)
        if result.outcome == StrategyOutcome.SUCCESS and not result.url:
            raise ProviderRecoverable(f"{adapter.display_name} reported success for {strategy} without a URL")
        return result

    def _await_build(self, adapter: ProviderAdapter, secret: str, result: StrategyResult,
                     record: DeploymentRecord) -> StrategyResult:
        ref = result.provider_ref
        record.provider_ref = ref
        record.log(LogLevel.INFO, f"Build {ref} in progress; checking status up to {self.status_checks} times")
        self.store.save(record)

        for check in range(1, self.status_checks + 1):
            self._sleep(self.status_interval)
            try:
                status = self._call(adapter.get_status, secret, ref)
            except ProviderTimeout as e:
                record.log(LogLevel.WARNING, f"Status check {check}/{self.status_checks} failed: {e.message}")
                continue
            if status.ready:
                return StrategyResult(outcome=StrategyOutcome.SUCCESS, url=status.url or result.url,
                                      provider_ref=ref)
            if status.failed:
                raise ProviderRecoverable(f"Build {ref} failed: {status.message or 'error'}")
            record.log(LogLevel.INFO, f"Status check {check}/{self.status_checks}: {status.message or 'building'}")
            self.store.save(record)

        record.log(LogLevel.WARNING, f"Build {ref} still running after {self.status_checks} checks; "
                                     f"reporting the provider URL")
        return StrategyResult(outcome=StrategyOutcome.SUCCESS, url=result.url, provider_ref=ref)

    def _settle(self, record: DeploymentRecord, result: StrategyResult) -> None:
        record.url = result.url
        record.provider_ref = result.provider_ref or record.provider_ref
        if result.outcome == StrategyOutcome.NEEDS_SETUP:
            for line in result.instructions:
                record.log(LogLevel.WARNING, line)
            self._finish(record, DeploymentStatus.NEEDS_SETUP, "manual_setup_required",
                         f"{record.strategy} needs manual setup to finish", level=LogLevel.WARNING)
            return
        record.transition(DeploymentStatus.DEPLOYED, f"Deployed to {result.url}", level=LogLevel.SUCCESS)
        self.store.save(record)

    # Record operations

    def cancel(self, deployment_id: str) -> DeploymentRecord:
        """
        Ask a run to stop before its next strategy. In-flight provider calls
        are not interrupted.

        Raises:
            NotFoundError: Unknown id
            ConflictError: The record is already terminal
        """
        record = self.store.get(deployment_id)
        if record.terminal:
            raise ConflictError(f"Deployment {deployment_id} already finished as {record.status.value}")
        record = self.store.request_cancel(deployment_id)
        logger.info(f"Cancellation requested for {deployment_id}")
        return record

    def rollback(self, deployment_id: str) -> DeploymentRecord:
        """
        Re-point a project at its previous successful deployment.

        Creates a new record, already ``deployed``, that copies the branch,
        commit, build configuration and URL of the most recent deployed record
        of the same project started strictly before ``deployment_id``. No
        provider is contacted.

        Raises:
            NotFoundError: Unknown id
            NoPriorDeployment: Nothing earlier was deployed
        """
        target = self.store.get(deployment_id)
        started = parse_ts(target.started_at)
        prior = next(
            (r for r in self.store.list_for_project(target.project_id)
             if r.status == DeploymentStatus.DEPLOYED and parse_ts(r.started_at) < started),
            None,
        )
        if prior is None:
            raise NoPriorDeployment(f"No deployment of {target.project_id} succeeded before {deployment_id}")

        record = DeploymentRecord(
            id=new_deployment_id(),
            project_id=target.project_id,
            owner_id=target.owner_id,
            provider=prior.provider,
            repository=prior.repository,
            branch=prior.branch,
            commit=prior.commit,
            status=DeploymentStatus.DEPLOYED,
            strategy="rollback",
            url=prior.url,
            provider_ref=prior.provider_ref,
            build_config=prior.build_config,
            simulated=prior.simulated,
            rollback_of=target.id,
        )
        record.log(LogLevel.INFO, f"Rolling back {target.id} to {prior.id} ({prior.branch}@{prior.commit})")
        record.log(LogLevel.SUCCESS, f"Restored {prior.url}")
        record.completed_at = record.logs[-1].timestamp
        self.store.create(record)
        logger.info(f"Rolled back {target.id} to {prior.id} as {record.id}")
        return record

    def get_status(self, deployment_id: str) -> DeploymentRecord:
        return self.store.get(deployment_id)

    def list_deployments(self, project_id: str) -> List[DeploymentRecord]:
        return self.store.list_for_project(project_id)
