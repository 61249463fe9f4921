"""Generation node handler."""

from typing import Any, Dict, Optional, TYPE_CHECKING

from constants import HANDLE_IMAGE_IN, HANDLE_TEXT_IN, PROMPT_INPUT_TOKEN
from core.logging import get_logger
from services.llm import GenerationRequest

if TYPE_CHECKING:
    from models.nodes import LLMNodeData
    from services.llm import ProviderPool

logger = get_logger(__name__)


def build_prompt(template: str, text_input: Optional[str]) -> str:
    """Merge the upstream text into the prompt template.

    Every ``{{input}}`` token is replaced. A template without the token gets
    the text appended under an ``Input:`` heading; an empty template is
    replaced by the text itself.
    """
    template = template or ""
    if text_input is None:
        return template
    if not template.strip():
        return text_input
    if PROMPT_INPUT_TOKEN in template:
        return template.replace(PROMPT_INPUT_TOKEN, text_input)
    return f"{template}\n\nInput:\n{text_input}"


async def handle_llm_node(
    node_id: str,
    node_type: str,
    data: "LLMNodeData",
    inputs: Dict[str, Any],
    provider_pool: "ProviderPool"
) -> Dict[str, Any]:
    """Handle a generation node.

    Args:
        node_id: The node ID
        node_type: The node type (llmNode)
        data: Validated node configuration
        inputs: Values of connected input handles whose source completed
        provider_pool: Pool that routes the call across providers

    Returns:
        Execution result dict
    """
    text_input = inputs.get(HANDLE_TEXT_IN)
    image_input = inputs.get(HANDLE_IMAGE_IN)

    if text_input is None and image_input is None:
        return {"success": False, "error": "No text or image input connected"}

    prompt = build_prompt(data.prompt, None if text_input is None else str(text_input))
    if not prompt.strip():
        return {"success": False, "error": "Prompt is empty"}

    request = GenerationRequest(
        prompt=prompt,
        system_prompt=data.system_prompt or None,
        model=data.model,
        temperature=data.temperature,
        max_tokens=data.max_tokens,
        image_data=image_input or None,
    )
    response = await provider_pool.generate(request)

    logger.debug("Generation finished", node_id=node_id,
                 provider=response.provider, cached=response.cached,
                 fallback=response.fallback)
    return {
        "success": True,
        "text": response.text,
        "model": response.model,
        "provider": response.provider,
        "cached": response.cached,
        "fallback": response.fallback,
    }
