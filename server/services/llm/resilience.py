"""Provider pool with key rotation, rate-limit retry and graceful degradation.

ProviderPool.generate() never raises for provider trouble: credentials are
tried in priority order, rate-limited ones are parked for a cool-down, and
when nothing works the caller gets a deterministic placeholder so the
surrounding workflow still completes.
"""

import asyncio
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import httpx

from core.config import Settings
from core.logging import get_logger, mask_key
from .cache import ResponseCache
from .clients import GenerationRequest, GenerationResponse, ProviderClient
from .errors import ProviderError
from .registry import Credential

logger = get_logger(__name__)

RATE_LIMIT_SIGNATURES = (
    "429",
    "quota",
    "rate limit",
    "too many requests",
    "billing",
    "exceeded",
    "insufficient_quota",
)

FALLBACK_MODEL = "fallback"
FALLBACK_PROVIDER = "fallback"
SIMULATED_MODEL = "simulated"
SIMULATED_PROVIDER = "simulation"


def is_rate_limit_error(error: BaseException) -> bool:
    """Classify an error as rate-limit/quota/billing exhaustion."""
    status_code = getattr(error, "status_code", None)
    if status_code is None and isinstance(error, httpx.HTTPStatusError):
        status_code = error.response.status_code
    if status_code == 429:
        return True
    message = str(error).lower()
    return any(signature in message for signature in RATE_LIMIT_SIGNATURES)


# =============================================================================
# RESILIENCE STATE
# =============================================================================

class ResilienceContext:
    """Exhausted-key bookkeeping plus the response cache.

    One instance is shared by every run in the process; tests build a fresh
    one. Mutations happen under a lock and never across an await.
    """

    def __init__(self, cooldown_seconds: float = 3600,
                 cache: Optional[ResponseCache] = None,
                 clock: Callable[[], float] = time.time):
        self.cooldown_seconds = cooldown_seconds
        self.cache = cache if cache is not None else ResponseCache(clock=clock)
        self._clock = clock
        self._exhausted: Dict[str, float] = {}
        self._last_recovery: Optional[float] = None
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "ResilienceContext":
        cache = ResponseCache(ttl_seconds=settings.response_cache_ttl,
                              max_entries=settings.response_cache_max_entries)
        return cls(cooldown_seconds=settings.key_cooldown_seconds, cache=cache)

    def mark_exhausted(self, api_key: str) -> None:
        with self._lock:
            self._exhausted[api_key] = self._clock()
        logger.warning("Marked key as exhausted", key=mask_key(api_key))

    def is_exhausted(self, api_key: str) -> bool:
        with self._lock:
            return self._is_exhausted_locked(api_key, self._clock())

    def _is_exhausted_locked(self, api_key: str, now: float) -> bool:
        exhausted_at = self._exhausted.get(api_key)
        if exhausted_at is None:
            return False
        if now - exhausted_at >= self.cooldown_seconds:
            del self._exhausted[api_key]
            return False
        return True

    def available(self, credentials: List[Credential]) -> List[Credential]:
        """Credentials not currently cooling down, order preserved."""
        with self._lock:
            now = self._clock()
            return [c for c in credentials if not self._is_exhausted_locked(c.api_key, now)]

    def begin_recovery(self) -> bool:
        """Claim the clear-and-retry recovery, allowed once per cool-down window."""
        with self._lock:
            now = self._clock()
            if self._last_recovery is not None and now - self._last_recovery < self.cooldown_seconds:
                return False
            self._last_recovery = now
            self._exhausted.clear()
        logger.info("Cleared exhausted keys for a fresh retry")
        return True

    def clear_exhausted(self) -> int:
        """Operator reset: forget every exhausted key and re-arm recovery."""
        with self._lock:
            count = len(self._exhausted)
            self._exhausted.clear()
            self._last_recovery = None
        logger.info("Cleared exhausted keys", count=count)
        return count

    def exhausted_snapshot(self) -> Dict[str, float]:
        with self._lock:
            now = self._clock()
            for key in list(self._exhausted):
                self._is_exhausted_locked(key, now)
            return dict(self._exhausted)

    def now(self) -> float:
        return self._clock()


@dataclass
class RetryPolicy:
    """Retry configuration for rate-limited provider calls.

    Implements exponential backoff with configurable limits.
    Delay formula: min(initial_delay * (backoff_multiplier ^ attempt), max_delay)
    """
    max_retries: int = 3
    initial_delay: float = 2.0       # seconds
    max_delay: float = 30.0          # seconds
    backoff_multiplier: float = 2.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(max_retries=settings.ai_max_retries,
                   initial_delay=settings.ai_retry_delay,
                   max_delay=settings.ai_max_retry_delay)

    def calculate_delay(self, attempt: int) -> float:
        """Calculate delay before the next attempt.

        Args:
            attempt: Number of retries already made (0-indexed)

        Returns:
            Delay in seconds before next attempt
        """
        delay = self.initial_delay * (self.backoff_multiplier ** attempt)
        return min(delay, self.max_delay)

    def should_retry(self, error: BaseException, attempt: int) -> bool:
        """Only rate-limit failures are retried in place."""
        if attempt >= self.max_retries:
            return False
        return is_rate_limit_error(error)


# =============================================================================
# DEGRADED RESPONSES
# =============================================================================

def _clip(text: str, limit: int) -> str:
    return text[:limit] + "…" if len(text) > limit else text


def build_no_credentials_response(request: GenerationRequest) -> GenerationResponse:
    text = "\n".join([
        "Sample response (no API keys configured):",
        _clip(request.prompt, 300),
        "",
        "Add a provider API key (for example GROQ_API_KEY) for real AI responses.",
    ])
    return GenerationResponse(text=text, model=FALLBACK_MODEL, provider=FALLBACK_PROVIDER,
                              fallback=True, error="No provider credentials configured")


def build_fallback_response(request: GenerationRequest,
                            last_error: Optional[str]) -> GenerationResponse:
    text = "\n".join([
        "Here's a sample response based on your request:",
        _clip(request.prompt, 200),
        "",
        "This is a temporary fallback because every provider is currently "
        "unavailable (quota or keys).",
    ])
    return GenerationResponse(text=text, model=FALLBACK_MODEL, provider=FALLBACK_PROVIDER,
                              fallback=True, error=last_error)


def generate_simulated_text(prompt: str, image_data: Optional[str] = None) -> str:
    """Content-aware canned response used in simulation mode."""
    lowered = prompt.lower()

    if "summarize" in lowered or "summary" in lowered:
        return (f"Summary:\n{prompt[:200]}...\n\n"
                "The content has been processed and summarized based on your request.")

    if "translate" in lowered or "translation" in lowered:
        return (f'Translation:\n"{prompt[:100]}..." -> [Translation would appear here]\n\n'
                "The translation has been processed.")

    if "code" in lowered or "programming" in lowered or "function" in lowered:
        return (f"Here's a code example:\n\n```python\ndef example():\n"
                f"    # {prompt[:50]}...\n    return \"result\"\n```\n\n"
                "Code has been generated based on your request.")

    if image_data:
        return ("I can see an image in your request. Analysis results:\n"
                "- Image content and objects detected\n"
                "- Text in the image processed\n"
                "- Colors and composition analyzed\n\n"
                "The image has been processed successfully.")

    return (f'Based on your prompt: "{prompt[:150]}..."\n\n'
            "I've processed your request and generated a response. "
            "The workflow continues normally.")


# =============================================================================
# PROVIDER POOL
# =============================================================================

class ProviderPool:
    """Routes generation requests across every configured credential."""

    def __init__(self, credentials: List[Credential], client: ProviderClient,
                 context: Optional[ResilienceContext] = None,
                 retry_policy: Optional[RetryPolicy] = None,
                 simulation_mode: bool = False,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self.credentials = sorted(credentials, key=lambda c: (c.priority, c.rank))
        self.client = client
        self.context = context or ResilienceContext()
        self.retry_policy = retry_policy or RetryPolicy()
        self.simulation_mode = simulation_mode
        self._sleep = sleep

    async def generate(self, request: GenerationRequest,
                       context: Optional[ResilienceContext] = None) -> GenerationResponse:
        """Generate text, degrading to a placeholder instead of raising.

        Args:
            request: The generation request
            context: Resilience state to use instead of the pool's own

        Returns:
            GenerationResponse; fallback=True when no provider produced it
        """
        ctx = context or self.context

        if self.simulation_mode:
            return GenerationResponse(
                text=generate_simulated_text(request.prompt, request.image_data),
                model=SIMULATED_MODEL,
                provider=SIMULATED_PROVIDER,
            )

        if not self.credentials:
            logger.warning("No provider credentials configured, returning placeholder")
            return build_no_credentials_response(request)

        cache_key = None
        if not request.image_data:
            cache_key = ResponseCache.make_key(request.model, request.system_prompt, request.prompt)
            cached = ctx.cache.get(cache_key)
            if cached is not None:
                return GenerationResponse(text=cached, model=request.model or "",
                                          provider="cache", cached=True)

        candidates = ctx.available(self.credentials)
        if not candidates and ctx.begin_recovery():
            candidates = list(self.credentials)

        response, last_error = await self._try_candidates(candidates, request, ctx)

        if response is None and not ctx.available(self.credentials) and ctx.begin_recovery():
            response, last_error = await self._try_candidates(list(self.credentials), request, ctx)

        if response is None:
            logger.error("All providers failed, returning placeholder", last_error=last_error)
            return build_fallback_response(request, last_error)

        if cache_key is not None and response.text:
            ctx.cache.set(cache_key, response.text)
        return response

    async def _try_candidates(self, candidates: List[Credential], request: GenerationRequest,
                              ctx: ResilienceContext) -> Tuple[Optional[GenerationResponse], Optional[str]]:
        """Walk candidates in order until one succeeds."""
        last_error: Optional[str] = None
        for credential in candidates:
            logger.debug("Trying provider", provider=credential.provider,
                         key=credential.masked_key)
            try:
                response = await self._call_with_retry(credential, request)
            except Exception as e:
                last_error = str(e) or type(e).__name__
                if is_rate_limit_error(e):
                    ctx.mark_exhausted(credential.api_key)
                logger.warning("Provider failed, trying next",
                               provider=credential.provider,
                               key=credential.masked_key,
                               error=last_error)
                continue
            logger.info("Provider succeeded", provider=credential.provider,
                        model=response.model)
            return response, None
        return None, last_error

    async def _call_with_retry(self, credential: Credential,
                               request: GenerationRequest) -> GenerationResponse:
        attempt = 0
        while True:
            try:
                return await self.client.generate(credential, request)
            except (ProviderError, httpx.HTTPError) as e:
                if not self.retry_policy.should_retry(e, attempt):
                    raise
                delay = self.retry_policy.calculate_delay(attempt)
                logger.info("Rate limited, backing off",
                            provider=credential.provider,
                            attempt=attempt + 1,
                            delay=delay)
                await self._sleep(delay)
                attempt += 1

    def status(self, context: Optional[ResilienceContext] = None) -> Dict[str, Any]:
        """Key counts, masked keys and exhaustion state for operators."""
        ctx = context or self.context
        exhausted = ctx.exhausted_snapshot()
        now = ctx.now()
        available = ctx.available(self.credentials)

        exhausted_info = []
        for credential in self.credentials:
            exhausted_at = exhausted.get(credential.api_key)
            if exhausted_at is None:
                continue
            remaining = max(0.0, ctx.cooldown_seconds - (now - exhausted_at))
            exhausted_info.append({
                "provider": credential.provider,
                "key": credential.masked_key,
                "exhausted_at": datetime.fromtimestamp(exhausted_at, tz=timezone.utc).isoformat(),
                "reset_in_minutes": int(-(-remaining // 60)),
            })

        return {
            "total_keys": len(self.credentials),
            "available_keys": len(available),
            "exhausted_keys": len(exhausted_info),
            "providers": [
                {
                    "provider": c.provider,
                    "key": c.masked_key,
                    "priority": c.priority,
                    "available": c in available,
                }
                for c in self.credentials
            ],
            "exhausted": exhausted_info,
            "cache_size": len(ctx.cache),
            "simulation_mode": self.simulation_mode,
        }

    async def aclose(self) -> None:
        await self.client.aclose()
