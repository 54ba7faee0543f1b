"""In-memory chart store."""

from .store import InMemoryChartStore

__all__ = ["InMemoryChartStore"]
