"""Provider registry - single source of truth for provider configurations.

Holds static provider metadata, the model-name mapping used when a request
written for one provider is served by another, and credential discovery
from settings.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from core.config import Settings
from core.logging import mask_key

GEMINI = 'gemini'
OPENAI = 'openai'
ANTHROPIC = 'anthropic'
OPENROUTER = 'openrouter'
GROQ = 'groq'
HUGGINGFACE = 'huggingface'


@dataclass(frozen=True)
class ProviderConfig:
    """Configuration for an inference provider."""
    name: str
    display_name: str
    priority: int  # Lower is tried first
    default_model: str
    supports_images: bool


PROVIDER_CONFIGS: Dict[str, ProviderConfig] = {
    GROQ: ProviderConfig(
        name=GROQ,
        display_name='Groq',
        priority=5,
        default_model='llama-3.1-70b-versatile',
        supports_images=False,
    ),
    GEMINI: ProviderConfig(
        name=GEMINI,
        display_name='Gemini',
        priority=10,
        default_model='gemini-2.0-flash',
        supports_images=True,
    ),
    OPENAI: ProviderConfig(
        name=OPENAI,
        display_name='OpenAI',
        priority=20,
        default_model='gpt-4o-mini',
        supports_images=True,
    ),
    ANTHROPIC: ProviderConfig(
        name=ANTHROPIC,
        display_name='Anthropic',
        priority=30,
        default_model='claude-3-5-sonnet-20241022',
        supports_images=True,
    ),
    OPENROUTER: ProviderConfig(
        name=OPENROUTER,
        display_name='OpenRouter',
        priority=40,
        default_model='openai/gpt-4o-mini',
        supports_images=False,
    ),
    HUGGINGFACE: ProviderConfig(
        name=HUGGINGFACE,
        display_name='Hugging Face',
        priority=60,
        default_model='mistralai/Mistral-7B-Instruct-v0.2',
        supports_images=False,
    ),
}


def get_model_for_provider(requested_model: Optional[str], provider: str) -> str:
    """Map a requested model name onto a model the provider actually serves.

    Names already native to the provider pass through unchanged; anything
    else falls back to the provider's closest equivalent or its default.
    """
    model = requested_model or ""
    config = PROVIDER_CONFIGS.get(provider)
    if config is None:
        return model or PROVIDER_CONFIGS[OPENAI].default_model

    if provider == GEMINI:
        return model if model.startswith("gemini-") else config.default_model

    if provider == OPENAI:
        if model.startswith(("gpt-", "o1-")):
            return model
        return config.default_model

    if provider == ANTHROPIC:
        if model.startswith("claude-"):
            return model
        if model.startswith("gemini-") and "flash" in model:
            return "claude-3-5-haiku-20241022"
        return config.default_model

    if provider == OPENROUTER:
        if model.startswith(("openai/", "anthropic/", "google/")):
            return model
        if model.startswith("gemini-"):
            return f"google/{model}"
        if model.startswith("gpt-"):
            return f"openai/{model}"
        if model.startswith("claude-"):
            return f"anthropic/{model}"
        return config.default_model

    if provider == GROQ:
        if model.startswith(("llama", "mixtral", "gemma")):
            return model
        return config.default_model

    if provider == HUGGINGFACE:
        return model if "/" in model else config.default_model

    return config.default_model


# =============================================================================
# CREDENTIALS
# =============================================================================

@dataclass(frozen=True)
class Credential:
    """One API key bound to one provider.

    ``priority`` is the provider's priority; ``rank`` orders several keys of
    the same provider.
    """
    provider: str
    api_key: str
    priority: int
    rank: int = 0

    @property
    def masked_key(self) -> str:
        return mask_key(self.api_key)


def split_keys(value: Optional[str]) -> List[str]:
    """Split a comma-separated key list, dropping blanks."""
    if not value:
        return []
    return [k.strip() for k in value.split(",") if k.strip()]


def discover_credentials(settings: Settings) -> List[Credential]:
    """Collect every configured credential, ordered by priority.

    Gemini accepts several environment variables, each possibly holding a
    comma-separated list; its keys share the Gemini priority and are ranked
    in the order given. Every other provider takes a single key.

    Returns:
        Credentials sorted by (priority, rank)
    """
    credentials: List[Credential] = []

    gemini_priority = PROVIDER_CONFIGS[GEMINI].priority
    gemini_keys: List[str] = []
    for source in (settings.google_ai_api_key,
                   settings.gemini_api_key,
                   settings.google_generative_ai_api_key):
        for key in split_keys(source):
            if key not in gemini_keys:
                gemini_keys.append(key)
    for index, key in enumerate(gemini_keys):
        credentials.append(Credential(GEMINI, key, gemini_priority, rank=index))

    single_key_providers = {
        OPENAI: settings.openai_api_key,
        ANTHROPIC: settings.anthropic_api_key,
        OPENROUTER: settings.openrouter_api_key,
        GROQ: settings.groq_api_key,
        HUGGINGFACE: settings.huggingface_api_key,
    }
    for provider, raw in single_key_providers.items():
        if raw and raw.strip():
            credentials.append(Credential(provider, raw.strip(), PROVIDER_CONFIGS[provider].priority))

    return sorted(credentials, key=lambda c: (c.priority, c.rank))
