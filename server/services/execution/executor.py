"""Workflow executor with level-by-level parallel execution.

Implements:
- Kahn leveling into parallel-safe batches
- Fork/Join per level with asyncio.gather (a level is a barrier)
- Fresh input gathering from completed upstream nodes only
- Advisory cancellation between levels
- Status events for every node transition
"""

import asyncio
import time
from typing import Any, Dict, List, Optional, Set, Union, TYPE_CHECKING

from core.logging import get_logger, log_execution_time
from models.nodes import WorkflowEdge, WorkflowNode, parse_edges, parse_nodes
from .events import CallbackObserver, StatusBroadcaster, StatusCallback, StatusObserver
from .leveler import plan_levels
from .models import (
    ExecutionLevel,
    NodeExecutionResult,
    NodeStatus,
    RunStatus,
    StatusEvent,
    WorkflowExecutionState,
)
from .validator import get_connected_inputs, get_node_output

if TYPE_CHECKING:
    from services.node_executor import NodeExecutor

logger = get_logger(__name__)

CYCLE_ERROR = "Workflow contains cycles - cannot execute"
DUPLICATE_ID_ERROR = "Workflow contains duplicate node ids"


class WorkflowExecutor:
    """Runs workflow graphs level by level.

    Features:
    - Isolated WorkflowExecutionState per run
    - Parallel execution of independent nodes (Fork/Join)
    - No failure cascading: a node whose input source failed still runs and
      reports its own missing-input error
    """

    def __init__(self, node_executor: "NodeExecutor",
                 broadcaster: Optional[StatusBroadcaster] = None):
        """Initialize executor.

        Args:
            node_executor: Dispatches single nodes to their handlers
            broadcaster: Receives every status event (a private one is
                         created when omitted)
        """
        self.node_executor = node_executor
        self.broadcaster = broadcaster or StatusBroadcaster()

        # Active executions (in-memory for cancellation lookup)
        self._active_states: Dict[str, WorkflowExecutionState] = {}

    # =========================================================================
    # EXECUTION ENTRY POINT
    # =========================================================================

    async def run_workflow(self,
                           nodes: List[Union[WorkflowNode, Dict[str, Any]]],
                           edges: List[Union[WorkflowEdge, Dict[str, Any]]],
                           on_status_update: Optional[StatusCallback] = None,
                           execution_id: Optional[str] = None) -> WorkflowExecutionState:
        """Execute a workflow graph.

        Args:
            nodes: Workflow nodes (models or editor dicts)
            edges: Workflow edges (models or editor dicts)
            on_status_update: Optional callback(node_id, status, result),
                              called synchronously for every transition
            execution_id: Optional id to use instead of a generated one

        Returns:
            The final execution state
        """
        nodes = parse_nodes(nodes)
        edges = parse_edges(edges)

        state = WorkflowExecutionState.create()
        if execution_id:
            state.execution_id = execution_id
        observers: List[StatusObserver] = []
        if on_status_update is not None:
            observers.append(CallbackObserver(on_status_update))

        duplicates = _duplicate_ids(nodes)
        if duplicates:
            state.status = RunStatus.FAILED
            state.error = f"{DUPLICATE_ID_ERROR}: {', '.join(duplicates)}"
            state.end_time = time.time()
            logger.warning("Refusing to run workflow with duplicate node ids",
                           execution_id=state.execution_id, duplicates=duplicates)
            return state

        levels = plan_levels(nodes, edges)
        if levels is None:
            state.status = RunStatus.FAILED
            state.error = CYCLE_ERROR
            state.end_time = time.time()
            logger.warning("Refusing to run cyclic workflow", execution_id=state.execution_id)
            return state

        state.levels = levels
        node_map = {node.id: node for node in nodes}

        logger.info("Starting workflow execution",
                    execution_id=state.execution_id,
                    node_count=len(node_map),
                    levels=len(levels))

        self._active_states[state.execution_id] = state
        try:
            for node_id in node_map:
                self._set_status(state, node_id, NodeStatus.PENDING, None, observers)

            for level in levels:
                if state.is_cancelled:
                    logger.info("Run cancelled, not scheduling further levels",
                                execution_id=state.execution_id, next_level=level.level)
                    break
                await self._run_level(state, level, node_map, edges, observers)

            if state.is_cancelled:
                self._skip_unscheduled(state, observers)
            else:
                state.status = state.resolve_final_status()

        except asyncio.CancelledError:
            # Task cancellation abandons the in-flight level too
            state.status = RunStatus.CANCELLED
            self._skip_unscheduled(state, observers, NodeStatus.PENDING, NodeStatus.RUNNING)
            raise

        finally:
            state.end_time = time.time()
            self._active_states.pop(state.execution_id, None)
            log_execution_time(logger, "run_workflow", state.start_time, state.end_time,
                               execution_id=state.execution_id,
                               status=state.status.value,
                               completed=len(state.get_completed_nodes()),
                               failed=len(state.get_failed_nodes()))

        return state

    # =========================================================================
    # LEVEL EXECUTION
    # =========================================================================

    async def _run_level(self, state: WorkflowExecutionState, level: ExecutionLevel,
                         node_map: Dict[str, WorkflowNode], edges: List[WorkflowEdge],
                         observers: List[StatusObserver]) -> None:
        """Run every node of a level concurrently and wait for all to settle."""
        node_ids = [nid for nid in level.node_ids if nid in node_map]
        for node_id in node_ids:
            self._set_status(state, node_id, NodeStatus.RUNNING, None, observers)

        logger.debug("Running level", execution_id=state.execution_id,
                     level=level.level, nodes=node_ids)

        results = await asyncio.gather(*[
            self._execute_node(state, node_map[node_id], edges, node_map)
            for node_id in node_ids
        ])

        for result in results:
            state.node_results[result.node_id] = result
            self._set_status(state, result.node_id, result.status, result, observers)

    async def _execute_node(self, state: WorkflowExecutionState, node: WorkflowNode,
                            edges: List[WorkflowEdge],
                            node_map: Dict[str, WorkflowNode]) -> NodeExecutionResult:
        start_time = time.time()
        try:
            inputs = self._gather_inputs(state, node, edges, node_map)
            return await self.node_executor.execute(node, inputs)
        except Exception as e:
            logger.error("Node dispatch failed", execution_id=state.execution_id,
                         node_id=node.id, error=str(e))
            return NodeExecutionResult.failure(node.id, str(e), start_time)

    def _gather_inputs(self, state: WorkflowExecutionState, node: WorkflowNode,
                       edges: List[WorkflowEdge],
                       node_map: Dict[str, WorkflowNode]) -> Dict[str, Any]:
        """Collect input values from upstream nodes that completed.

        An input whose source failed, was skipped or produced nothing is left
        out entirely; the handler decides whether it can run without it.
        """
        inputs: Dict[str, Any] = {}
        for handle_id, edge in get_connected_inputs(node.id, edges).items():
            source = node_map.get(edge.source)
            if source is None:
                continue
            if state.node_statuses.get(edge.source) != NodeStatus.COMPLETED:
                continue
            value = get_node_output(state.node_results.get(edge.source),
                                    source.type, edge.source_handle)
            if value is not None:
                inputs[handle_id] = value
        return inputs

    # =========================================================================
    # STATUS TRACKING
    # =========================================================================

    def _set_status(self, state: WorkflowExecutionState, node_id: str, status: NodeStatus,
                    result: Optional[NodeExecutionResult],
                    observers: List[StatusObserver]) -> None:
        state.node_statuses[node_id] = status
        event = StatusEvent(
            execution_id=state.execution_id,
            node_id=node_id,
            status=status,
            result=result,
        )
        self.broadcaster.publish(event, extra_observers=observers)

    def _skip_unscheduled(self, state: WorkflowExecutionState,
                          observers: List[StatusObserver],
                          *statuses: NodeStatus) -> None:
        statuses = statuses or (NodeStatus.PENDING,)
        for node_id in [nid for nid, s in state.node_statuses.items() if s in statuses]:
            self._set_status(state, node_id, NodeStatus.SKIPPED, None, observers)

    # =========================================================================
    # CANCELLATION
    # =========================================================================

    def cancel(self, execution_id: str) -> bool:
        """Request cancellation of a running workflow.

        In-flight nodes finish; no further level is scheduled and the nodes
        that never started are marked skipped.

        Returns:
            True if the run was active and is now marked cancelled
        """
        state = self._active_states.get(execution_id)
        if state is None or state.status != RunStatus.RUNNING:
            return False
        state.status = RunStatus.CANCELLED
        logger.info("Cancellation requested", execution_id=execution_id)
        return True

    def get_active_executions(self) -> List[str]:
        return list(self._active_states)

    def get_execution_state(self, execution_id: str) -> Optional[WorkflowExecutionState]:
        return self._active_states.get(execution_id)


def _duplicate_ids(nodes: List[WorkflowNode]) -> List[str]:
    seen: Set[str] = set()
    duplicates: List[str] = []
    for node in nodes:
        if node.id in seen and node.id not in duplicates:
            duplicates.append(node.id)
        seen.add(node.id)
    return duplicates
