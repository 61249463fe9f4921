"""Connection validation for workflow graphs.

Every edge insertion is gated by validate_connection(): a pure function that
never raises and explains a rejection with a human-readable reason the editor
can display.

Usage:
    from services.execution.validator import validate_connection

    check = validate_connection(connection, nodes, edges)
    if not check.valid:
        show_error(check.reason)
"""

from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Iterable

from constants import NODE_OUTPUT_FIELDS, get_handle_kind, is_kind_compatible
from core.logging import get_logger
from models.nodes import Connection, WorkflowEdge, WorkflowNode
from .models import NodeExecutionResult

logger = get_logger(__name__)


@dataclass(frozen=True)
class ConnectionValidation:
    """Outcome of validating a candidate edge."""
    valid: bool
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        d: Dict[str, object] = {"valid": self.valid}
        if self.reason:
            d["reason"] = self.reason
        return d


VALID = ConnectionValidation(valid=True)


def _reject(reason: str) -> ConnectionValidation:
    return ConnectionValidation(valid=False, reason=reason)


def validate_connection(connection: Connection,
                        nodes: List[WorkflowNode],
                        edges: List[WorkflowEdge]) -> ConnectionValidation:
    """Validate a candidate edge against the current graph.

    Checks run in order and stop at the first failure:
    1. all four endpoints are present
    2. no self-loop
    3. both nodes exist
    4. the target handle is not already connected (single input rule)
    5. both handles exist and their kinds are compatible
    6. the edge would not close a cycle

    Args:
        connection: The candidate edge
        nodes: Current node set
        edges: Current edge set (the candidate is not part of it)

    Returns:
        ConnectionValidation with valid=False and a reason on rejection
    """
    source = connection.source
    target = connection.target
    source_handle = connection.source_handle
    target_handle = connection.target_handle

    if not source or not target or not source_handle or not target_handle:
        return _reject("Missing connection information")

    if source == target:
        return _reject("Cannot connect node to itself")

    source_node = _find_node(nodes, source)
    target_node = _find_node(nodes, target)
    if source_node is None or target_node is None:
        return _reject("Source or target node not found")

    if is_input_connected(target, target_handle, edges):
        return _reject("Input already connected")

    source_kind = get_handle_kind(source_node.type, source_handle, is_source=True)
    target_kind = get_handle_kind(target_node.type, target_handle, is_source=False)
    if not source_kind or not target_kind:
        return _reject("Invalid handle")

    if not is_kind_compatible(source_kind, target_kind):
        return _reject(f"Cannot connect {source_kind} to {target_kind}")

    if would_create_cycle(source, target, edges):
        return _reject("Connection would create a cycle")

    return VALID


def validate_graph(nodes: List[WorkflowNode], edges: List[WorkflowEdge]) -> List[str]:
    """Replay every edge of a loaded workflow through validate_connection.

    Edges are inserted in list order, each checked against the ones accepted
    before it, exactly as the editor would have inserted them.

    Returns:
        List of error strings (empty if the whole graph is valid)
    """
    errors: List[str] = []
    seen_ids = set()
    for node in nodes:
        if node.id in seen_ids:
            errors.append(f"Duplicate node id: {node.id}")
        seen_ids.add(node.id)

    accepted: List[WorkflowEdge] = []
    for edge in edges:
        check = validate_connection(Connection.from_edge(edge), nodes, accepted)
        if check.valid:
            accepted.append(edge)
        else:
            label = edge.id or f"{edge.source}->{edge.target}"
            errors.append(f"Edge {label}: {check.reason}")

    if errors:
        logger.debug("Graph validation failed", error_count=len(errors))
    return errors


# =============================================================================
# CYCLE DETECTION (DAG VALIDATION)
# =============================================================================

def would_create_cycle(source: str, target: str, edges: Iterable[WorkflowEdge]) -> bool:
    """Adding source -> target closes a loop iff target already reaches source."""
    return has_path(target, source, edges)


def has_path(start: str, goal: str, edges: Iterable[WorkflowEdge]) -> bool:
    """Depth-first reachability from start to goal over the edge set."""
    if start == goal:
        return True

    adjacency: Dict[str, List[str]] = defaultdict(list)
    for edge in edges:
        adjacency[edge.source].append(edge.target)

    visited = {start}
    stack = [start]
    while stack:
        current = stack.pop()
        for successor in adjacency.get(current, ()):
            if successor == goal:
                return True
            if successor not in visited:
                visited.add(successor)
                stack.append(successor)
    return False


# =============================================================================
# CONNECTION LOOKUPS
# =============================================================================

def get_connected_inputs(node_id: str, edges: Iterable[WorkflowEdge]) -> Dict[str, WorkflowEdge]:
    """Map each connected input handle of a node to the edge feeding it."""
    connections: Dict[str, WorkflowEdge] = {}
    for edge in edges:
        if edge.target == node_id and edge.target_handle and edge.source_handle:
            connections[edge.target_handle] = edge
    return connections


def is_input_connected(node_id: str, handle_id: str, edges: Iterable[WorkflowEdge]) -> bool:
    return any(e.target == node_id and e.target_handle == handle_id for e in edges)


def _find_node(nodes: List[WorkflowNode], node_id: str) -> Optional[WorkflowNode]:
    for node in nodes:
        if node.id == node_id:
            return node
    return None


def get_node_output(result: Optional[NodeExecutionResult], node_type: str,
                    source_handle: Optional[str] = None) -> Any:
    """Value a completed node hands to downstream inputs.

    Every node type has a single output handle, so the source handle only
    matters for logging.

    Returns:
        The output value, or None if the node did not complete
    """
    if result is None or not result.succeeded or not result.output:
        return None
    field = NODE_OUTPUT_FIELDS.get(node_type)
    if field is None:
        logger.warning("No output field for node type", node_type=node_type,
                       source_handle=source_handle)
        return None
    return result.output.get(field)
