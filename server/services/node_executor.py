"""Node Executor - Single node execution with handler dispatch.

Uses a registry pattern for clean handler dispatch without if-else chains.
"""

import time
from functools import partial
from typing import Dict, Any, Callable, TYPE_CHECKING

from pydantic import ValidationError

from core.logging import get_logger
from constants import (
    ALL_NODE_TYPES,
    CROP_IMAGE_NODE,
    EXTRACT_FRAME_NODE,
    IMAGE_UPLOAD_NODE,
    LLM_NODE,
    TEXT_NODE,
    VIDEO_UPLOAD_NODE,
)
from models.nodes import WorkflowNode, validate_node_data
from services.execution.models import NodeExecutionResult, NodeStatus
from services.handlers import (
    handle_text_node, handle_image_upload, handle_video_upload,
    handle_crop_image, handle_extract_frame, handle_llm_node,
)

if TYPE_CHECKING:
    from core.config import Settings
    from services.llm import ProviderPool

logger = get_logger(__name__)


class NodeExecutor:
    """Executes individual workflow nodes using registry-based dispatch."""

    def __init__(self, provider_pool: "ProviderPool", settings: "Settings"):
        self.provider_pool = provider_pool
        self.settings = settings
        self._handlers = self._build_handler_registry()

        missing = ALL_NODE_TYPES - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler registered for node types: {sorted(missing)}")

    def _build_handler_registry(self) -> Dict[str, Callable]:
        """Build handler registry with service dependencies bound via partial."""
        return {
            # Sources
            TEXT_NODE: partial(handle_text_node, settings=self.settings),
            IMAGE_UPLOAD_NODE: partial(handle_image_upload, settings=self.settings),
            VIDEO_UPLOAD_NODE: partial(handle_video_upload, settings=self.settings),
            # Media processing
            CROP_IMAGE_NODE: partial(handle_crop_image, settings=self.settings),
            EXTRACT_FRAME_NODE: partial(handle_extract_frame, settings=self.settings),
            # Generation
            LLM_NODE: partial(handle_llm_node, provider_pool=self.provider_pool),
        }

    @property
    def supported_types(self):
        return frozenset(self._handlers)

    async def execute(self, node: WorkflowNode, inputs: Dict[str, Any]) -> NodeExecutionResult:
        """Execute a single workflow node.

        Expected failures come back from the handler as ``success: False``;
        anything raised is converted into a failed result. The returned
        result always carries timing.

        Args:
            node: The node to run
            inputs: Input handle id -> value, for inputs whose source completed

        Returns:
            NodeExecutionResult with status completed or failed
        """
        start_time = time.time()

        handler = self._handlers.get(node.type)
        if handler is None:
            return NodeExecutionResult.failure(node.id, f"Unknown node type: {node.type}", start_time)

        try:
            data = validate_node_data(node.type, node.data)
            output = await handler(node.id, node.type, data, inputs)
        except ValidationError as e:
            logger.warning("Invalid node configuration", node_id=node.id,
                           node_type=node.type, errors=e.error_count())
            return NodeExecutionResult.failure(node.id, f"Invalid configuration: {e}", start_time)
        except Exception as e:
            logger.error("Node execution error", node_id=node.id, node_type=node.type, error=str(e))
            return NodeExecutionResult.failure(node.id, str(e) or type(e).__name__, start_time)

        end_time = time.time()
        success = bool(output.get("success"))
        error = output.get("error")
        if not success:
            logger.info("Node reported failure", node_id=node.id, error=error)

        return NodeExecutionResult(
            node_id=node.id,
            status=NodeStatus.COMPLETED if success else NodeStatus.FAILED,
            output={k: v for k, v in output.items() if k not in ("success", "error")},
            error=None if success else (error or "Node execution failed"),
            start_time=start_time,
            end_time=end_time,
            duration=end_time - start_time,
        )
