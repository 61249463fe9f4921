"""Direct access to the provider pool."""

from fastapi import APIRouter, Depends

from core.container import container
from core.logging import get_logger
from services.llm import GenerationRequest, ProviderPool

logger = get_logger(__name__)
router = APIRouter(prefix="/api/llm", tags=["llm"])


@router.post("/generate")
async def generate(
    request: GenerationRequest,
    pool: ProviderPool = Depends(lambda: container.provider_pool())
):
    """Single generation through the pool; degrades to a placeholder, never errors."""
    response = await pool.generate(request)
    return {"success": True, **response.to_dict()}


@router.get("/status")
async def provider_status(
    pool: ProviderPool = Depends(lambda: container.provider_pool())
):
    """Key counts, masked keys, exhaustion and cache state."""
    return pool.status()


@router.delete("/exhausted")
async def clear_exhausted_keys(
    pool: ProviderPool = Depends(lambda: container.provider_pool())
):
    cleared = pool.context.clear_exhausted()
    return {"success": True, "cleared": cleared}
