"""
Error taxonomy shared by the detection engine, vault and orchestrator.
"""

from typing import Optional


class AutoDeployError(Exception):
    """Base class for all errors raised by autodeploy."""

    code = "error"
    hint: Optional[str] = None

    def __init__(self, message: str = "", hint: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if hint is not None:
            self.hint = hint

    def to_dict(self):
        return {"code": self.code, "message": self.message, "hint": self.hint}


class ValidationError(AutoDeployError):
    """Malformed request. Reported immediately, never retried."""
    code = "validation_error"


class NotFoundError(AutoDeployError):
    code = "not_found"


class ConflictError(AutoDeployError):
    """A non-terminal run already owns the deployment id."""
    code = "conflict"
    hint = "Wait for the active deployment to finish or cancel it"


class InvalidTransition(AutoDeployError):
    code = "invalid_transition"


class VaultError(AutoDeployError):
    code = "vault_error"


class CredentialMissing(AutoDeployError):
    code = "credential_missing"
    hint = "Connect your provider account first"


class CredentialInvalid(AutoDeployError):
    code = "credential_invalid"
    hint = "Reconnect your provider account; the stored token was rejected"


class ProviderRecoverable(AutoDeployError):
    """Capability or integration failure; the next strategy may still work."""
    code = "provider_recoverable"


class ProviderTimeout(ProviderRecoverable):
    """Network call exceeded its bound or failed transiently."""
    code = "timeout"


class ProviderFatal(AutoDeployError):
    code = "provider_fatal"


class NoPriorDeployment(AutoDeployError):
    code = "no_prior_deployment"
    hint = "A rollback needs an earlier successful deployment of the same project"
