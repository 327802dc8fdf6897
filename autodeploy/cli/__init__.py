"""Command line interface for AutoDeploy."""
