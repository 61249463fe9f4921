"""Centralized constants for node types, handles and handle kinds.

This module provides a single source of truth for the node catalogue,
eliminating duplicate string arrays across the codebase.
"""

from typing import Dict, FrozenSet, List, NamedTuple, Optional

# =============================================================================
# NODE TYPES
# =============================================================================

TEXT_NODE = 'textNode'
IMAGE_UPLOAD_NODE = 'imageUploadNode'
VIDEO_UPLOAD_NODE = 'videoUploadNode'
LLM_NODE = 'llmNode'
CROP_IMAGE_NODE = 'cropImageNode'
EXTRACT_FRAME_NODE = 'extractFrameNode'

# Source nodes have no input handles and produce configured values
SOURCE_NODE_TYPES: FrozenSet[str] = frozenset([
    TEXT_NODE,
    IMAGE_UPLOAD_NODE,
    VIDEO_UPLOAD_NODE,
])

# Media processing nodes transform an upstream media reference
MEDIA_PROCESSING_TYPES: FrozenSet[str] = frozenset([
    CROP_IMAGE_NODE,
    EXTRACT_FRAME_NODE,
])

# Generation nodes are routed through the provider pool
GENERATION_NODE_TYPES: FrozenSet[str] = frozenset([
    LLM_NODE,
])

ALL_NODE_TYPES: FrozenSet[str] = (
    SOURCE_NODE_TYPES |
    MEDIA_PROCESSING_TYPES |
    GENERATION_NODE_TYPES
)

# =============================================================================
# HANDLE KINDS
# =============================================================================

KIND_TEXT = 'text'
KIND_IMAGE = 'image'
KIND_VIDEO = 'video'
KIND_FRAME = 'frame'
KIND_ANY = 'any'

HANDLE_KINDS: FrozenSet[str] = frozenset([
    KIND_TEXT, KIND_IMAGE, KIND_VIDEO, KIND_FRAME, KIND_ANY,
])

# Which target kinds each source kind may feed.
# A frame is a still image, so it is accepted wherever an image is expected.
KIND_COMPATIBILITY: Dict[str, FrozenSet[str]] = {
    KIND_TEXT: frozenset([KIND_TEXT, KIND_ANY]),
    KIND_IMAGE: frozenset([KIND_IMAGE, KIND_ANY]),
    KIND_VIDEO: frozenset([KIND_VIDEO, KIND_ANY]),
    KIND_FRAME: frozenset([KIND_FRAME, KIND_IMAGE, KIND_ANY]),
    KIND_ANY: HANDLE_KINDS,
}

# =============================================================================
# HANDLE DEFINITIONS
# =============================================================================

HANDLE_TEXT_IN = 'text-in'
HANDLE_TEXT_OUT = 'text-out'
HANDLE_IMAGE_IN = 'image-in'
HANDLE_IMAGE_OUT = 'image-out'
HANDLE_VIDEO_IN = 'video-in'
HANDLE_VIDEO_OUT = 'video-out'
HANDLE_FRAME_OUT = 'frame-out'


class HandleDefinition(NamedTuple):
    """A named, kind-tagged port on a node."""
    id: str
    kind: str


class NodeHandleConfig(NamedTuple):
    inputs: List[HandleDefinition]
    outputs: List[HandleDefinition]


NODE_HANDLE_CONFIG: Dict[str, NodeHandleConfig] = {
    TEXT_NODE: NodeHandleConfig(
        inputs=[],
        outputs=[HandleDefinition(HANDLE_TEXT_OUT, KIND_TEXT)],
    ),
    IMAGE_UPLOAD_NODE: NodeHandleConfig(
        inputs=[],
        outputs=[HandleDefinition(HANDLE_IMAGE_OUT, KIND_IMAGE)],
    ),
    VIDEO_UPLOAD_NODE: NodeHandleConfig(
        inputs=[],
        outputs=[HandleDefinition(HANDLE_VIDEO_OUT, KIND_VIDEO)],
    ),
    LLM_NODE: NodeHandleConfig(
        inputs=[
            HandleDefinition(HANDLE_TEXT_IN, KIND_TEXT),
            HandleDefinition(HANDLE_IMAGE_IN, KIND_IMAGE),
        ],
        outputs=[HandleDefinition(HANDLE_TEXT_OUT, KIND_TEXT)],
    ),
    CROP_IMAGE_NODE: NodeHandleConfig(
        inputs=[HandleDefinition(HANDLE_IMAGE_IN, KIND_IMAGE)],
        outputs=[HandleDefinition(HANDLE_IMAGE_OUT, KIND_IMAGE)],
    ),
    EXTRACT_FRAME_NODE: NodeHandleConfig(
        inputs=[HandleDefinition(HANDLE_VIDEO_IN, KIND_VIDEO)],
        outputs=[HandleDefinition(HANDLE_FRAME_OUT, KIND_FRAME)],
    ),
}

# Output field each node type hands to downstream handles
NODE_OUTPUT_FIELDS: Dict[str, str] = {
    TEXT_NODE: 'text',
    IMAGE_UPLOAD_NODE: 'image_data',
    VIDEO_UPLOAD_NODE: 'video_data',
    LLM_NODE: 'text',
    CROP_IMAGE_NODE: 'image_data',
    EXTRACT_FRAME_NODE: 'frame_data',
}

# Placeholder token substituted with the text input of a generation node
PROMPT_INPUT_TOKEN = '{{input}}'


def get_handle_kind(node_type: str, handle_id: str, is_source: bool) -> Optional[str]:
    """Look up the kind of a handle on a node type.

    Args:
        node_type: Node type string (e.g. 'llmNode')
        handle_id: Handle identifier (e.g. 'text-in')
        is_source: True for output handles, False for input handles

    Returns:
        The handle kind, or None if the node type or handle is unknown
    """
    config = NODE_HANDLE_CONFIG.get(node_type)
    if not config:
        return None
    handles = config.outputs if is_source else config.inputs
    for handle in handles:
        if handle.id == handle_id:
            return handle.kind
    return None


def is_kind_compatible(source_kind: str, target_kind: str) -> bool:
    """Check whether an output of source_kind may feed an input of target_kind."""
    if target_kind == KIND_ANY:
        return True
    return target_kind in KIND_COMPATIBILITY.get(source_kind, frozenset())
