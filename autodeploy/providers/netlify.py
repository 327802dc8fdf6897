"""
Netlify adapter.

Fallback chain: create a site linked to the repository, else upload the GitHub
zipball as a deploy, else create a build hook and hand setup to the user.
"""

import logging
from typing import Any, Dict

import requests

from autodeploy.errors import CredentialInvalid, ProviderRecoverable, ProviderTimeout

from .base import (
    CredentialCheck,
    DeployRequest,
    ProviderAdapter,
    ProviderStatus,
    StrategyOutcome,
    StrategyResult,
    raise_for_provider_status,
)

logger = logging.getLogger(__name__)

GITHUB_ZIPBALL = "https://api.github.com/repos/{full_name}/zipball/{ref}"


def _site_url(site: Dict[str, Any], fallback: str) -> str:
    return site.get("ssl_url") or site.get("url") or fallback


class NetlifyAdapter(ProviderAdapter):
    name = "netlify"
    display_name = "Netlify"
    domain = "netlify.app"
    api_base = "https://api.netlify.com/api/v1"
    strategies = ("direct-git-link", "zip-upload", "deploy-hook")

    def _check_credential(self, secret: str) -> CredentialCheck:
        try:
            user = self._request("GET", "/user", secret)
        except CredentialInvalid as e:
            return CredentialCheck(valid=False, error=e.message)
        identity = user.get("slug") or user.get("email") or user.get("id")
        return CredentialCheck(valid=True, identity=identity)

    def _build_settings(self, request: DeployRequest) -> Dict[str, Any]:
        build = request.build_config
        settings = {}
        if build.build_command:
            settings["cmd"] = build.build_command
        if build.output_directory:
            settings["dir"] = build.output_directory
        return settings

    def _ensure_site(self, secret: str, request: DeployRequest, context: Dict[str, Any]) -> Dict[str, Any]:
        if context.get("site"):
            return context["site"]
        site = self._request("POST", "/sites", secret, json={
            "name": request.project_slug,
            "build_settings": self._build_settings(request),
        })
        if not site.get("id"):
            raise ProviderRecoverable("Netlify created no site id")
        context["site"] = site
        return site

    def _strategy_direct_git_link(self, secret: str, request: DeployRequest,
                                  context: Dict[str, Any]) -> StrategyResult:
        repo = {"provider": "github", "repo": request.repository.full_name, "branch": request.branch}
        repo.update(self._build_settings(request))
        site = self._request("POST", "/sites", secret, json={"name": request.project_slug, "repo": repo})
        if not site.get("id"):
            raise ProviderRecoverable("Netlify created no site id")
        context["site"] = site

        linked = (site.get("build_settings") or {}).get("repo_url")
        if not linked:
            # the site exists but Netlify could not reach the repository
            raise ProviderRecoverable("Netlify site created without repository access")

        url = _site_url(site, f"https://{request.project_slug}.{self.domain}")
        logs = [f"Created Netlify site {site['id']} linked to {linked}"]
        deploy_id = site.get("deploy_id")
        if deploy_id:
            return StrategyResult(outcome=StrategyOutcome.PENDING, url=url, provider_ref=deploy_id, logs=logs)
        return StrategyResult(outcome=StrategyOutcome.SUCCESS, url=url, provider_ref=site["id"], logs=logs)

    def _download_zipball(self, request: DeployRequest) -> bytes:
        url = GITHUB_ZIPBALL.format(full_name=request.repository.full_name, ref=request.branch)
        try:
            response = self.session.get(url, headers={"Accept": "application/vnd.github.v3+json"},
                                        timeout=self.timeout)
        except (requests.Timeout, requests.ConnectionError) as e:
            raise ProviderTimeout(f"GitHub zipball download failed: {e.__class__.__name__}")
        raise_for_provider_status(response, "GitHub zipball download", auth=False)
        return response.content

    def _strategy_zip_upload(self, secret: str, request: DeployRequest,
                             context: Dict[str, Any]) -> StrategyResult:
        site = self._ensure_site(secret, request, context)
        archive = self._download_zipball(request)
        deploy = self._request("POST", f"/sites/{site['id']}/deploys", secret,
                               data=archive, headers={"Content-Type": "application/zip"})
        ref = deploy.get("id")
        state = deploy.get("state", "")
        url = deploy.get("ssl_url") or _site_url(site, f"https://{request.project_slug}.{self.domain}")
        logs = [f"Uploaded {len(archive)} bytes of {request.repository.full_name}@{request.branch} to site {site['id']}"]

        if state == "error":
            raise ProviderRecoverable(f"Netlify deploy {ref} failed: {deploy.get('error_message', 'unknown error')}")
        if state == "ready":
            return StrategyResult(outcome=StrategyOutcome.SUCCESS, url=url, provider_ref=ref, logs=logs)
        return StrategyResult(outcome=StrategyOutcome.PENDING, url=url, provider_ref=ref, logs=logs)

    def _strategy_deploy_hook(self, secret: str, request: DeployRequest,
                              context: Dict[str, Any]) -> StrategyResult:
        site = self._ensure_site(secret, request, context)
        hook = self._request("POST", f"/sites/{site['id']}/build_hooks", secret,
                             json={"title": "AutoDeploy", "branch": request.branch})
        hook_url = hook.get("url") or "see the Netlify dashboard"
        return StrategyResult(
            outcome=StrategyOutcome.NEEDS_SETUP,
            url=_site_url(site, f"https://{request.project_slug}.{self.domain}"),
            provider_ref=site["id"],
            logs=[f"Created build hook for site {site['id']}"],
            instructions=[
                "Open the site in the Netlify dashboard and link the GitHub repository",
                f"Or trigger builds by POSTing to the build hook: {hook_url}",
                f"Builds will deploy branch {request.branch}",
            ],
        )

    def get_status(self, secret: str, deployment_ref: str) -> ProviderStatus:
        body = self._request("GET", f"/deploys/{deployment_ref}", secret)
        state = body.get("state", "")
        url = body.get("ssl_url") or body.get("deploy_ssl_url") or body.get("url")
        if state == "ready":
            return ProviderStatus(state="ready", url=url)
        if state == "error":
            return ProviderStatus(state="error", url=url, message=body.get("error_message") or state)
        return ProviderStatus(state="building", url=url, message=state or None)
