"""REST API for AutoDeploy."""
