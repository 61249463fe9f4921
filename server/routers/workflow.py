"""Workflow validation, planning and execution routes."""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from typing import List, Optional

from core.container import container
from core.logging import get_logger
from models.nodes import Connection, WorkflowEdge, WorkflowNode
from services.example_loader import get_example_workflow, get_example_workflows
from services.execution import (
    WorkflowExecutor,
    get_execution_order,
    plan_levels,
    validate_connection,
    validate_graph,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/api/workflow", tags=["workflow"])


class WorkflowGraphRequest(BaseModel):
    nodes: List[WorkflowNode] = []
    edges: List[WorkflowEdge] = []


class ConnectionValidationRequest(WorkflowGraphRequest):
    connection: Connection


class WorkflowExecutionRequest(WorkflowGraphRequest):
    execution_id: Optional[str] = None
    validate_first: bool = True


@router.post("/validate-connection")
async def validate_connection_route(request: ConnectionValidationRequest):
    """Check a candidate edge before the editor inserts it."""
    check = validate_connection(request.connection, request.nodes, request.edges)
    return check.to_dict()


@router.post("/validate")
async def validate_workflow(request: WorkflowGraphRequest):
    """Replay every edge of a workflow through the connection validator."""
    errors = validate_graph(request.nodes, request.edges)
    return {"valid": not errors, "errors": errors}


@router.post("/plan")
async def plan_workflow(request: WorkflowGraphRequest):
    """Return the parallel execution levels and a flat order."""
    levels = plan_levels(request.nodes, request.edges)
    if levels is None:
        return {"schedulable": False, "levels": [], "order": []}
    return {
        "schedulable": True,
        "levels": [level.to_dict() for level in levels],
        "order": get_execution_order(request.nodes, request.edges),
    }


@router.post("/execute")
async def execute_workflow(
    request: WorkflowExecutionRequest,
    executor: WorkflowExecutor = Depends(lambda: container.workflow_executor())
):
    """Run a workflow to completion and return its final state."""
    if request.validate_first:
        errors = validate_graph(request.nodes, request.edges)
        if errors:
            logger.info("Rejected invalid workflow", error_count=len(errors))
            return {"success": False, "errors": errors}

    state = await executor.run_workflow(request.nodes, request.edges,
                                        execution_id=request.execution_id)
    return {"success": True, **state.to_dict()}


@router.post("/cancel/{execution_id}")
async def cancel_execution(
    execution_id: str,
    executor: WorkflowExecutor = Depends(lambda: container.workflow_executor())
):
    """Request advisory cancellation of a running workflow."""
    cancelled = executor.cancel(execution_id)
    return {"success": cancelled, "execution_id": execution_id}


@router.get("/active")
async def list_active_executions(
    executor: WorkflowExecutor = Depends(lambda: container.workflow_executor())
):
    return {"execution_ids": executor.get_active_executions()}


@router.get("/templates")
async def list_templates():
    """Sample workflows shipped with the service."""
    return {"templates": get_example_workflows()}


@router.get("/templates/{template_id}")
async def get_template(template_id: str):
    workflow = get_example_workflow(template_id)
    if workflow is not None:
        return workflow
    raise HTTPException(status_code=404, detail=f"Template not found: {template_id}")
