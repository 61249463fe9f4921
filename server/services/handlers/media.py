"""Source and media processing node handlers."""

import asyncio
import random
from typing import Any, Dict, Optional, TYPE_CHECKING

from constants import HANDLE_IMAGE_IN, HANDLE_VIDEO_IN
from core.logging import get_logger

if TYPE_CHECKING:
    from core.config import Settings
    from models.nodes import (
        CropImageNodeData, ExtractFrameNodeData, ImageUploadNodeData,
        TextNodeData, VideoUploadNodeData,
    )

logger = get_logger(__name__)

# Simulated processing time in seconds, before scaling
SOURCE_LATENCY = (0.1, 0.1)
CROP_LATENCY = (1.0, 1.5)
FRAME_LATENCY = (1.5, 2.0)


async def simulate_latency(settings: "Settings", bounds: tuple) -> None:
    """Sleep for a random duration in bounds, scaled by node_latency_scale."""
    low, high = bounds
    delay = random.uniform(low, high) * settings.node_latency_scale
    if delay > 0:
        await asyncio.sleep(delay)


def _fmt(value: float) -> str:
    """Render whole floats without a trailing .0"""
    return str(int(value)) if float(value).is_integer() else str(value)


async def handle_text_node(
    node_id: str,
    node_type: str,
    data: "TextNodeData",
    inputs: Dict[str, Any],
    settings: "Settings"
) -> Dict[str, Any]:
    """Emit the configured text. Never fails."""
    await simulate_latency(settings, SOURCE_LATENCY)
    return {"success": True, "text": data.text or ""}


async def handle_image_upload(
    node_id: str,
    node_type: str,
    data: "ImageUploadNodeData",
    inputs: Dict[str, Any],
    settings: "Settings"
) -> Dict[str, Any]:
    """Emit the uploaded image reference."""
    await simulate_latency(settings, SOURCE_LATENCY)
    if not data.image_url:
        return {"success": False, "error": "No image uploaded"}
    return {"success": True, "image_data": data.image_url, "file_name": data.file_name}


async def handle_video_upload(
    node_id: str,
    node_type: str,
    data: "VideoUploadNodeData",
    inputs: Dict[str, Any],
    settings: "Settings"
) -> Dict[str, Any]:
    """Emit the uploaded video reference."""
    await simulate_latency(settings, SOURCE_LATENCY)
    if not data.video_url:
        return {"success": False, "error": "No video uploaded"}
    return {
        "success": True,
        "video_data": data.video_url,
        "file_name": data.file_name,
        "duration": data.duration,
    }


async def handle_crop_image(
    node_id: str,
    node_type: str,
    data: "CropImageNodeData",
    inputs: Dict[str, Any],
    settings: "Settings"
) -> Dict[str, Any]:
    """Crop the connected image to the configured rectangle.

    The crop is simulated: the output is a descriptor of the requested
    region rather than new pixel data.
    """
    await simulate_latency(settings, CROP_LATENCY)

    image: Optional[str] = inputs.get(HANDLE_IMAGE_IN)
    if not image:
        return {"success": False, "error": "No image input connected"}

    logger.debug("Cropping image", node_id=node_id,
                 width=data.width, height=data.height, x=data.x, y=data.y)
    return {
        "success": True,
        "image_data": (f"[Cropped: {_fmt(data.width)}x{_fmt(data.height)} "
                       f"at ({_fmt(data.x)},{_fmt(data.y)})]"),
        "width": data.width,
        "height": data.height,
    }


async def handle_extract_frame(
    node_id: str,
    node_type: str,
    data: "ExtractFrameNodeData",
    inputs: Dict[str, Any],
    settings: "Settings"
) -> Dict[str, Any]:
    """Extract a still frame from the connected video (simulated)."""
    await simulate_latency(settings, FRAME_LATENCY)

    video: Optional[str] = inputs.get(HANDLE_VIDEO_IN)
    if not video:
        return {"success": False, "error": "No video input connected"}

    return {
        "success": True,
        "frame_data": f"[Frame at {_fmt(data.timestamp)}s as {data.format}]",
        "timestamp": data.timestamp,
        "format": data.format,
    }
