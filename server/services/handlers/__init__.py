"""Node handlers package.

One async handler per node type, organized by category:
- media.py: Text, Image Upload, Video Upload, Crop Image, Extract Frame
- ai.py: LLM generation
"""

# Source and media handlers
from .media import (
    handle_text_node,
    handle_image_upload,
    handle_video_upload,
    handle_crop_image,
    handle_extract_frame,
)

# AI handlers
from .ai import (
    build_prompt,
    handle_llm_node,
)

__all__ = [
    # Source and media
    'handle_text_node',
    'handle_image_upload',
    'handle_video_upload',
    'handle_crop_image',
    'handle_extract_frame',
    # AI
    'build_prompt',
    'handle_llm_node',
]
