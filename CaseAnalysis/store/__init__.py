"""Persistence boundary for the case-analysis core."""

from CaseAnalysis.store.base import RunStore
from CaseAnalysis.store.memory import InMemoryRunStore

__all__ = ["RunStore", "InMemoryRunStore"]
