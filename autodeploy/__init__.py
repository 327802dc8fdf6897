"""
AutoDeploy - deployment decision and orchestration engine.

This package detects how a repository should be built and hosted, and
drives it through a provider deployment with fallback strategies,
exposed through a CLI and a REST API.
"""

__version__ = "0.1.0"
__author__ = "AutoDeploy"
