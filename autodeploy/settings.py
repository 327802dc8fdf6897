"""
Environment-driven configuration.
"""

import os
from pathlib import Path


def get_autodeploy_home() -> Path:
    """
    Get the AutoDeploy home directory holding deployment records and credentials.

    Returns:
        Path: AutoDeploy home directory
    """
    home = os.environ.get("AUTODEPLOY_HOME", ".autodeploy")
    return Path(home).resolve()


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def get_provider_timeout() -> float:
    """Upper bound, in seconds, for a single provider adapter call."""
    return _float_env("AUTODEPLOY_PROVIDER_TIMEOUT", 30.0)


def get_demo_latency() -> float:
    """Fixed latency applied to every simulated provider call."""
    return _float_env("AUTODEPLOY_DEMO_LATENCY", 2.0)


def get_status_checks() -> int:
    return int(_float_env("AUTODEPLOY_STATUS_CHECKS", 5))


def get_status_interval() -> float:
    return _float_env("AUTODEPLOY_STATUS_INTERVAL", 3.0)


def get_vault_key_setting() -> str | None:
    """Raw master key from the environment, if configured."""
    return os.environ.get("AUTODEPLOY_VAULT_KEY") or None
