"""Execution engine package.

Workflow execution with:
- Connection validation (kinds, single input per handle, no cycles)
- Kahn leveling into parallel-safe batches
- Parallel node execution with asyncio.gather, one level at a time
- Status events fanned out to observers and bounded queues
"""

from .models import (
    NodeStatus,
    RunStatus,
    ExecutionLevel,
    NodeExecutionResult,
    StatusEvent,
    WorkflowExecutionState,
    TERMINAL_NODE_STATUSES,
)
from .validator import (
    ConnectionValidation,
    validate_connection,
    validate_graph,
    would_create_cycle,
    has_path,
    get_connected_inputs,
    is_input_connected,
    get_node_output,
)
from .leveler import (
    plan_levels,
    get_execution_order,
)
from .events import (
    StatusObserver,
    CallbackObserver,
    StatusBroadcaster,
)
from .executor import WorkflowExecutor, CYCLE_ERROR, DUPLICATE_ID_ERROR

__all__ = [
    # Models
    "NodeStatus",
    "RunStatus",
    "ExecutionLevel",
    "NodeExecutionResult",
    "StatusEvent",
    "WorkflowExecutionState",
    "TERMINAL_NODE_STATUSES",
    # Validator
    "ConnectionValidation",
    "validate_connection",
    "validate_graph",
    "would_create_cycle",
    "has_path",
    "get_connected_inputs",
    "is_input_connected",
    "get_node_output",
    # Leveler
    "plan_levels",
    "get_execution_order",
    # Events
    "StatusObserver",
    "CallbackObserver",
    "StatusBroadcaster",
    # Executor
    "WorkflowExecutor",
    "CYCLE_ERROR",
    "DUPLICATE_ID_ERROR",
]
