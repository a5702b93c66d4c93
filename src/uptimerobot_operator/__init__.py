"""Kubernetes operator that keeps UptimeRobot resources in sync with custom resources."""

__version__ = "0.1.0"
