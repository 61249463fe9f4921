"""Topological leveling of workflow graphs for parallel execution.

Nodes in the same level have no dependency on each other and can run
concurrently; a node in level k depends only on nodes in levels < k.
"""

from collections import defaultdict
from typing import Dict, List, Optional

from core.logging import get_logger
from models.nodes import WorkflowEdge, WorkflowNode
from .models import ExecutionLevel

logger = get_logger(__name__)


def _build_graph(nodes: List[WorkflowNode], edges: List[WorkflowEdge]):
    """Build in-degree and adjacency maps, ignoring edges to unknown nodes."""
    node_ids = [node.id for node in nodes]
    known = set(node_ids)
    in_degree: Dict[str, int] = {node_id: 0 for node_id in node_ids}
    adjacency: Dict[str, List[str]] = defaultdict(list)

    for edge in edges:
        if edge.source not in known or edge.target not in known:
            logger.warning("Ignoring edge with unknown endpoint",
                           edge_id=edge.id, source=edge.source, target=edge.target)
            continue
        adjacency[edge.source].append(edge.target)
        in_degree[edge.target] += 1

    return node_ids, in_degree, adjacency


def plan_levels(nodes: List[WorkflowNode],
                edges: List[WorkflowEdge]) -> Optional[List[ExecutionLevel]]:
    """Partition the graph into parallel-safe execution levels.

    Kahn's algorithm generalized to levels: level 0 holds every node with
    in-degree 0; processing a level decrements the in-degree of each
    successor, and successors reaching 0 form the next level.

    Args:
        nodes: Workflow nodes
        edges: Workflow edges

    Returns:
        Ordered list of levels, or None if the graph contains a cycle
    """
    node_ids, in_degree, adjacency = _build_graph(nodes, edges)

    current = [node_id for node_id in node_ids if in_degree[node_id] == 0]
    levels: List[ExecutionLevel] = []

    while current:
        levels.append(ExecutionLevel(level=len(levels), node_ids=current))
        next_level: List[str] = []
        for node_id in current:
            for successor in adjacency[node_id]:
                in_degree[successor] -= 1
                if in_degree[successor] == 0:
                    next_level.append(successor)
        current = next_level

    placed = sum(len(level.node_ids) for level in levels)
    if placed != len(node_ids):
        logger.warning("Cycle detected, graph is unschedulable",
                       placed=placed, total=len(node_ids))
        return None

    logger.debug("Computed execution levels",
                 level_count=len(levels),
                 levels=[lvl.node_ids for lvl in levels])
    return levels


def get_execution_order(nodes: List[WorkflowNode],
                        edges: List[WorkflowEdge]) -> Optional[List[str]]:
    """Flat topological order of node ids, or None if the graph contains a cycle."""
    node_ids, in_degree, adjacency = _build_graph(nodes, edges)

    queue = [node_id for node_id in node_ids if in_degree[node_id] == 0]
    order: List[str] = []
    head = 0
    while head < len(queue):
        current = queue[head]
        head += 1
        order.append(current)
        for successor in adjacency[current]:
            in_degree[successor] -= 1
            if in_degree[successor] == 0:
                queue.append(successor)

    if len(order) != len(node_ids):
        return None
    return order
