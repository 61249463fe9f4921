"""Execution engine state models.

All state is ephemeral: created fresh per run and discarded afterwards.
Models are JSON-serializable so they can be streamed to the editor.
"""

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, List, Optional


class NodeStatus(str, Enum):
    """Per-node execution states.

    State transitions:
        PENDING -> RUNNING -> COMPLETED
                           -> FAILED
        PENDING -> SKIPPED (run cancelled before the node's level started)
        RUNNING -> SKIPPED (awaiting task cancelled mid-level)
    """
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class RunStatus(str, Enum):
    """Workflow run states. There is no paused state; cancellation is advisory."""
    RUNNING = "running"
    COMPLETED = "completed"    # No node failed
    PARTIAL = "partial"        # Some, but not all, nodes failed
    FAILED = "failed"          # Every node failed, or the graph was unschedulable
    CANCELLED = "cancelled"


TERMINAL_NODE_STATUSES = frozenset([
    NodeStatus.COMPLETED, NodeStatus.FAILED, NodeStatus.SKIPPED,
])


@dataclass
class ExecutionLevel:
    """A batch of nodes with no dependency relation among them."""
    level: int
    node_ids: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {"level": self.level, "node_ids": list(self.node_ids)}


@dataclass
class NodeExecutionResult:
    """Outcome of dispatching a single node."""
    node_id: str
    status: NodeStatus
    output: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    start_time: Optional[float] = None
    end_time: Optional[float] = None
    duration: Optional[float] = None

    @property
    def succeeded(self) -> bool:
        return self.status == NodeStatus.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "node_id": self.node_id,
            "status": self.status.value,
            "output": self.output,
            "error": self.error,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "duration": self.duration,
        }

    @classmethod
    def failure(cls, node_id: str, error: str, start_time: float) -> "NodeExecutionResult":
        """Build a failed result, recording the time from dispatch to settle."""
        end_time = time.time()
        return cls(
            node_id=node_id,
            status=NodeStatus.FAILED,
            error=error,
            start_time=start_time,
            end_time=end_time,
            duration=end_time - start_time,
        )


@dataclass
class StatusEvent:
    """A node status change published by the engine."""
    execution_id: str
    node_id: str
    status: NodeStatus
    result: Optional[NodeExecutionResult] = None
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "node_status",
            "execution_id": self.execution_id,
            "node_id": self.node_id,
            "status": self.status.value,
            "result": self.result.to_dict() if self.result else None,
            "timestamp": self.timestamp,
        }


@dataclass
class WorkflowExecutionState:
    """Isolated state for one workflow run.

    Owned exclusively by the executor for the lifetime of the run; observers
    only ever see it through status events or the returned snapshot.
    """
    execution_id: str
    status: RunStatus = RunStatus.RUNNING
    node_statuses: Dict[str, NodeStatus] = field(default_factory=dict)
    node_results: Dict[str, NodeExecutionResult] = field(default_factory=dict)
    levels: List[ExecutionLevel] = field(default_factory=list)
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None
    error: Optional[str] = None

    @classmethod
    def create(cls) -> "WorkflowExecutionState":
        """Factory method for a fresh run."""
        return cls(execution_id=str(uuid.uuid4()))

    @property
    def is_cancelled(self) -> bool:
        return self.status == RunStatus.CANCELLED

    @property
    def duration(self) -> Optional[float]:
        if self.end_time is None:
            return None
        return self.end_time - self.start_time

    def get_nodes_with_status(self, status: NodeStatus) -> List[str]:
        return [nid for nid, s in self.node_statuses.items() if s == status]

    def get_completed_nodes(self) -> List[str]:
        return self.get_nodes_with_status(NodeStatus.COMPLETED)

    def get_failed_nodes(self) -> List[str]:
        return self.get_nodes_with_status(NodeStatus.FAILED)

    def get_pending_nodes(self) -> List[str]:
        return self.get_nodes_with_status(NodeStatus.PENDING)

    def resolve_final_status(self) -> RunStatus:
        """Failed if every node failed, partial if some did, completed otherwise."""
        statuses = list(self.node_statuses.values())
        failed = sum(1 for s in statuses if s == NodeStatus.FAILED)
        if statuses and failed == len(statuses):
            return RunStatus.FAILED
        if failed:
            return RunStatus.PARTIAL
        return RunStatus.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "execution_id": self.execution_id,
            "status": self.status.value,
            "node_statuses": {nid: s.value for nid, s in self.node_statuses.items()},
            "node_results": {nid: r.to_dict() for nid, r in self.node_results.items()},
            "levels": [lvl.to_dict() for lvl in self.levels],
            "start_time": self.start_time,
            "end_time": self.end_time,
            "duration": self.duration,
            "error": self.error,
        }
