"""Multi-provider text generation with key rotation and graceful degradation."""

from .cache import ResponseCache
from .clients import (
    GenerationRequest,
    GenerationResponse,
    ProviderClient,
    parse_image_data,
)
from .errors import ProviderError, UnknownProviderError
from .registry import (
    PROVIDER_CONFIGS,
    Credential,
    ProviderConfig,
    discover_credentials,
    get_model_for_provider,
)
from .resilience import (
    ProviderPool,
    ResilienceContext,
    RetryPolicy,
    is_rate_limit_error,
)

__all__ = [
    # Cache
    "ResponseCache",
    # Clients
    "GenerationRequest",
    "GenerationResponse",
    "ProviderClient",
    "parse_image_data",
    # Errors
    "ProviderError",
    "UnknownProviderError",
    # Registry
    "PROVIDER_CONFIGS",
    "Credential",
    "ProviderConfig",
    "discover_credentials",
    "get_model_for_provider",
    # Resilience
    "ProviderPool",
    "ResilienceContext",
    "RetryPolicy",
    "is_rate_limit_error",
]
