"""Cluster state store clients."""

from store.base import StateStore
from store.kube import KubeStore

__all__ = [
    "StateStore",
    "KubeStore",
]
