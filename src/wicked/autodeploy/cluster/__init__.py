"""Kubernetes secret adapter."""

from wicked.autodeploy.cluster.client import KubernetesClient, join_url

__all__ = ["KubernetesClient", "join_url"]
