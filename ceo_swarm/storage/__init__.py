from .runs import RunRecord, RunStore, InMemoryRunStore

__all__ = ["RunRecord", "RunStore", "InMemoryRunStore"]
