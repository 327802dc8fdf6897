"""Main FastAPI application for the AutoDeploy REST API."""

import logging
import os
from typing import Any, Callable, Dict, List, Optional

import uvicorn
from fastapi import BackgroundTasks, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .. import __version__
from ..analyzer import BuildConfiguration, DetectionCache, analyze_repo
from ..errors import (
    AutoDeployError,
    ConflictError,
    CredentialInvalid,
    CredentialMissing,
    NoPriorDeployment,
    NotFoundError,
    ProviderFatal,
    ProviderRecoverable,
    ProviderTimeout,
    ValidationError,
    VaultError,
)
from ..orchestrator import Orchestrator
from ..providers import RepositoryRef, list_providers

logger = logging.getLogger(__name__)

# most specific classes first
STATUS_CODES = (
    (ValidationError, 400),
    (NoPriorDeployment, 404),
    (NotFoundError, 404),
    (ConflictError, 409),
    (CredentialMissing, 400),
    (CredentialInvalid, 400),
    (ProviderTimeout, 504),
    (ProviderRecoverable, 502),
    (ProviderFatal, 502),
    (VaultError, 500),
)


def status_code_for(error: AutoDeployError) -> int:
    for cls, code in STATUS_CODES:
        if isinstance(error, cls):
            return code
    return 500


# Pydantic models
class AnalyzeRequest(BaseModel):
    repository: str
    branch: Optional[str] = None
    cost_preference: str = "low"


class DeploymentCreate(BaseModel):
    project_id: str
    owner_id: str
    repository: str
    provider: str
    branch: str = "main"
    commit: str = "latest"
    build_config: Optional[Dict[str, Optional[str]]] = None
    deployment_id: Optional[str] = None
    detect: bool = True


class DeploymentCreated(BaseModel):
    deployment_id: str
    status: str


class CancelResponse(BaseModel):
    deployment_id: str
    status: str
    cancel_requested: bool


class RollbackResponse(BaseModel):
    deployment_id: str
    rollback_of: str
    status: str
    url: Optional[str] = None


class ConnectRequest(BaseModel):
    owner_id: str
    token: Optional[str] = None
    demo: bool = False


class Services:
    """Lazily built collaborators so importing the app has no side effects."""

    def __init__(self, orchestrator: Optional[Orchestrator] = None,
                 cache: Optional[DetectionCache] = None, analyzer: Optional[Callable] = None):
        self._orchestrator = orchestrator
        self.cache = cache if cache is not None else DetectionCache()
        self.analyzer = analyzer or analyze_repo

    @property
    def orchestrator(self) -> Orchestrator:
        if self._orchestrator is None:
            self._orchestrator = Orchestrator()
        return self._orchestrator

    @property
    def vault(self):
        return self.orchestrator.vault

    def detected_build_config(self, repository: str, branch: Optional[str]) -> Optional[BuildConfiguration]:
        """Build settings detected for a repository, or None when analysis fails."""
        repository = RepositoryRef.parse(repository).url
        try:
            result, commit = self.analyzer(repository, branch=branch, cache=self.cache)
        except (FileNotFoundError, ValueError, RuntimeError) as e:
            logger.warning(f"Build detection for {repository} failed, using the request's settings: {e}")
            return None
        logger.debug(f"Detected {result.framework} build settings for {repository}@{commit}")
        return result.build_config


def _run_in_background(orchestrator: Orchestrator, deployment_id: str) -> None:
    try:
        orchestrator.run(deployment_id)
    except AutoDeployError as e:
        logger.warning(f"Background run of {deployment_id} did not start: {e.code}: {e.message}")


def create_app(services: Optional[Services] = None) -> FastAPI:
    app = FastAPI(
        title="AutoDeploy API",
        description="Framework detection, provider selection and deployment orchestration",
        version=__version__,
    )
    app.state.services = services or Services()

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(AutoDeployError)
    async def autodeploy_error_handler(request: Request, exc: AutoDeployError):
        return JSONResponse(status_code=status_code_for(exc), content={"detail": exc.to_dict()})

    def _services(request: Request) -> Services:
        return request.app.state.services

    @app.get("/")
    async def root():
        """Health check endpoint."""
        return {"message": "AutoDeploy API is running", "version": __version__}

    @app.post("/analyze")
    def analyze(body: AnalyzeRequest, request: Request) -> Dict[str, Any]:
        """Detect the framework of a repository and rank providers for it."""
        services = _services(request)
        try:
            result, commit = services.analyzer(body.repository, branch=body.branch, cache=services.cache,
                                               cost_preference=body.cost_preference)
        except (FileNotFoundError, ValueError, RuntimeError) as e:
            raise HTTPException(
                status_code=400,
                detail={
                    "code": "analysis_failed",
                    "message": str(e),
                    "hint": "Check the repository URL or path and branch",
                },
            )
        data = result.to_dict()
        data["commit"] = commit
        return data

    @app.get("/providers")
    def providers(request: Request) -> List[Dict[str, Any]]:
        return list_providers(_services(request).orchestrator.adapters)

    @app.post("/deployments", response_model=DeploymentCreated, status_code=202)
    def create_deployment(body: DeploymentCreate, request: Request, background_tasks: BackgroundTasks):
        """
        Queue a deployment and run it after the response is sent. Detected
        build settings are used unless the request overrides them.
        """
        services = _services(request)
        orchestrator = services.orchestrator
        build = BuildConfiguration.from_dict(body.build_config) or BuildConfiguration()
        if body.detect:
            detected = services.detected_build_config(body.repository, body.branch)
            if detected is not None:
                build = detected.merged(build)
        record = orchestrator.submit(
            project_id=body.project_id,
            owner_id=body.owner_id,
            repository=body.repository,
            provider=body.provider,
            branch=body.branch,
            commit=body.commit,
            build_config=build.to_dict(),
            deployment_id=body.deployment_id,
        )
        background_tasks.add_task(_run_in_background, orchestrator, record.id)
        return DeploymentCreated(deployment_id=record.id, status=record.status.value)

    @app.get("/deployments")
    def list_deployments(project_id: str, request: Request) -> List[Dict[str, Any]]:
        records = _services(request).orchestrator.list_deployments(project_id)
        return [r.to_dict() for r in records]

    @app.get("/deployments/{deployment_id}")
    def get_deployment(deployment_id: str, request: Request) -> Dict[str, Any]:
        return _services(request).orchestrator.get_status(deployment_id).to_dict()

    @app.post("/deployments/{deployment_id}/cancel", response_model=CancelResponse)
    def cancel_deployment(deployment_id: str, request: Request):
        record = _services(request).orchestrator.cancel(deployment_id)
        return CancelResponse(deployment_id=record.id, status=record.status.value,
                              cancel_requested=record.cancel_requested)

    @app.post("/deployments/{deployment_id}/rollback", response_model=RollbackResponse)
    def rollback_deployment(deployment_id: str, request: Request):
        record = _services(request).orchestrator.rollback(deployment_id)
        return RollbackResponse(deployment_id=record.id, rollback_of=deployment_id,
                                status=record.status.value, url=record.url)

    @app.get("/credentials")
    def list_credentials(owner_id: str, request: Request) -> List[Dict[str, Any]]:
        return [c.to_dict() for c in _services(request).vault.list(owner_id)]

    @app.post("/credentials/{provider}/connect")
    def connect_credential(provider: str, body: ConnectRequest, request: Request) -> Dict[str, Any]:
        """Validate a provider token (or demo marker) and store it encrypted."""
        vault = _services(request).vault
        credential = vault.connect(body.owner_id, provider, secret=body.token, demo=body.demo)
        return {
            "valid": True,
            "provider": credential.provider,
            "mode": credential.mode.value,
            "identity": credential.identity,
        }

    @app.delete("/credentials/{provider}")
    def disconnect_credential(provider: str, owner_id: str, request: Request) -> Dict[str, Any]:
        removed = _services(request).vault.disconnect(owner_id, provider)
        if not removed:
            raise NotFoundError(f"No {provider} credential stored for {owner_id}")
        return {"provider": provider.lower(), "connected": False}

    @app.get("/credentials/{provider}/status")
    def credential_status(provider: str, owner_id: str, request: Request) -> Dict[str, Any]:
        return _services(request).vault.status(owner_id, provider).to_dict()

    @app.post("/credentials/rotate")
    def rotate_credentials(request: Request) -> Dict[str, Any]:
        return _services(request).vault.rotate_all().to_dict()

    return app


app = create_app()


def serve(host: str = "0.0.0.0", port: Optional[int] = None) -> None:
    port = port or int(os.getenv("PORT", 8080))
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    serve()
