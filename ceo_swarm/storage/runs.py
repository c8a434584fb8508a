from abc import ABC, abstractmethod
from typing import Dict, List, Any, Optional
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
import asyncio
import copy
import uuid

from ..core.errors import RunNotFoundError, StoreError


@dataclass
class RunRecord:
    """Persisted record of one swarm run."""
    goal: str
    mode: str
    model: str
    agents: List[str]
    budgets: Dict[str, Any] = field(default_factory=dict)
    tool_permissions: Dict[str, bool] = field(default_factory=dict)
    status: str = "running"  # running | complete | error
    phase: str = "strategic-breakdown"
    task_plan: List[Dict[str, Any]] = field(default_factory=list)
    agent_outputs: Dict[str, str] = field(default_factory=dict)
    review_output: Optional[str] = None
    final_output: Optional[str] = None
    error: Optional[str] = None
    events: List[Dict[str, Any]] = field(default_factory=list)
    device_id: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "goal": self.goal,
            "mode": self.mode,
            "model": self.model,
            "agents": self.agents,
            "budgets": self.budgets,
            "tool_permissions": self.tool_permissions,
            "status": self.status,
            "phase": self.phase,
            "task_plan": self.task_plan,
            "agent_outputs": self.agent_outputs,
            "review_output": self.review_output,
            "final_output": self.final_output,
            "error": self.error,
            "events": self.events,
            "device_id": self.device_id,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    def summary(self) -> Dict[str, Any]:
        """The columns shown in run listings."""
        return {
            "id": self.id,
            "goal": self.goal,
            "mode": self.mode,
            "status": self.status,
            "phase": self.phase,
            "created_at": self.created_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


_UPDATABLE = {f.name for f in fields(RunRecord)} - {"id", "created_at"}


class RunStore(ABC):
    """Insert/update/select interface for run records."""

    @abstractmethod
    async def insert(self, record: RunRecord) -> RunRecord:
        """Store a new record and return the stored copy."""
        pass

    @abstractmethod
    async def update(self, run_id: str, **changes) -> RunRecord:
        """Apply column changes to a record. Raises RunNotFoundError."""
        pass

    @abstractmethod
    async def get(self, run_id: str) -> RunRecord:
        """Fetch one record. Raises RunNotFoundError."""
        pass

    @abstractmethod
    async def list_runs(self, limit: int = 20) -> List[RunRecord]:
        """Most recently created records first."""
        pass


class InMemoryRunStore(RunStore):
    """
    In-memory run store.

    In production, this would be backed by a database table. Records handed
    out are copies, so callers never mutate the stored row.
    """

    def __init__(self):
        self._runs: Dict[str, RunRecord] = {}
        self._lock = asyncio.Lock()

    async def insert(self, record: RunRecord) -> RunRecord:
        async with self._lock:
            if record.id in self._runs:
                raise StoreError(f"Run already exists: {record.id}")
            self._runs[record.id] = copy.deepcopy(record)
            return copy.deepcopy(record)

    async def update(self, run_id: str, **changes) -> RunRecord:
        unknown = set(changes) - _UPDATABLE
        if unknown:
            raise StoreError(f"Unknown run fields: {', '.join(sorted(unknown))}")

        async with self._lock:
            record = self._runs.get(run_id)
            if record is None:
                raise RunNotFoundError(run_id)
            updated = replace(record, **copy.deepcopy(changes), updated_at=datetime.now())
            self._runs[run_id] = updated
            return copy.deepcopy(updated)

    async def get(self, run_id: str) -> RunRecord:
        record = self._runs.get(run_id)
        if record is None:
            raise RunNotFoundError(run_id)
        return copy.deepcopy(record)

    async def list_runs(self, limit: int = 20) -> List[RunRecord]:
        runs = sorted(self._runs.values(), key=lambda r: r.created_at, reverse=True)
        return [copy.deepcopy(r) for r in runs[:max(limit, 0)]]

    def clear(self) -> None:
        """Clear all stored runs."""
        self._runs.clear()
