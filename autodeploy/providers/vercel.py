"""
Vercel adapter.

Fallback chain: link a new project to the GitHub repository (Vercel then builds
it), else create a deployment straight from the git source.
"""

import logging
from typing import Any, Dict

from autodeploy.errors import CredentialInvalid, ProviderRecoverable

from .base import (
    CredentialCheck,
    DeployRequest,
    ProviderAdapter,
    ProviderStatus,
    StrategyOutcome,
    StrategyResult,
)

logger = logging.getLogger(__name__)

READY_STATES = ("READY",)
ERROR_STATES = ("ERROR", "CANCELED")

FRAMEWORK_PRESETS = {
    ".next": "nextjs",
    "public": "gatsby",
    "dist": "vite",
}


def _https(url: str) -> str:
    if not url:
        return url
    return url if url.startswith("http") else f"https://{url}"


class VercelAdapter(ProviderAdapter):
    name = "vercel"
    display_name = "Vercel"
    domain = "vercel.app"
    api_base = "https://api.vercel.com"
    strategies = ("project-git-link", "git-source-deployment")

    def _check_credential(self, secret: str) -> CredentialCheck:
        try:
            body = self._request("GET", "/v2/user", secret)
        except CredentialInvalid as e:
            return CredentialCheck(valid=False, error=e.message)
        user = body.get("user") or body
        identity = user.get("username") or user.get("email") or user.get("uid")
        return CredentialCheck(valid=True, identity=identity)

    def _strategy_project_git_link(self, secret: str, request: DeployRequest,
                                   context: Dict[str, Any]) -> StrategyResult:
        build = request.build_config
        payload = {
            "name": request.project_slug,
            "gitRepository": {"type": "github", "repo": request.repository.full_name},
            "framework": FRAMEWORK_PRESETS.get(build.output_directory or ""),
        }
        if build.install_command:
            payload["installCommand"] = build.install_command
        if build.build_command:
            payload["buildCommand"] = build.build_command
        if build.output_directory:
            payload["outputDirectory"] = build.output_directory

        project = self._request("POST", "/v10/projects", secret, json=payload)
        project_id = project.get("id")
        if not project_id:
            raise ProviderRecoverable("Vercel created no project id")
        context["project_id"] = project_id
        url = f"https://{project.get('name', request.project_slug)}.{self.domain}"
        logs = [f"Created Vercel project {project_id} linked to {request.repository.full_name}"]

        latest = project.get("latestDeployments") or []
        if latest and latest[0].get("id"):
            return StrategyResult(outcome=StrategyOutcome.PENDING, url=url,
                                  provider_ref=latest[0]["id"], logs=logs)
        return StrategyResult(outcome=StrategyOutcome.SUCCESS, url=url, provider_ref=project_id, logs=logs)

    def _strategy_git_source_deployment(self, secret: str, request: DeployRequest,
                                        context: Dict[str, Any]) -> StrategyResult:
        payload = {
            "name": request.project_slug,
            "gitSource": {
                "type": "github",
                "repo": request.repository.full_name,
                "ref": request.branch,
            },
        }
        if context.get("project_id"):
            payload["project"] = context["project_id"]
        if request.commit and request.commit != "latest":
            payload["gitSource"]["sha"] = request.commit

        deployment = self._request("POST", "/v13/deployments", secret, json=payload)
        ref = deployment.get("id")
        state = deployment.get("readyState", "")
        url = _https(deployment.get("url"))
        logs = [f"Vercel deployment {ref} created from {request.repository.full_name}@{request.branch}"]

        if state in ERROR_STATES:
            raise ProviderRecoverable(f"Vercel deployment {ref} ended in {state}")
        if state in READY_STATES:
            return StrategyResult(outcome=StrategyOutcome.SUCCESS, url=url, provider_ref=ref, logs=logs)
        return StrategyResult(outcome=StrategyOutcome.PENDING, url=url, provider_ref=ref, logs=logs)

    def get_status(self, secret: str, deployment_ref: str) -> ProviderStatus:
        body = self._request("GET", f"/v13/deployments/{deployment_ref}", secret)
        state = body.get("readyState", "")
        url = _https(body.get("url"))
        if state in READY_STATES:
            return ProviderStatus(state="ready", url=url)
        if state in ERROR_STATES:
            return ProviderStatus(state="error", url=url, message=body.get("errorMessage") or state)
        return ProviderStatus(state="building", url=url, message=state or None)
