"""HTTP adapters for each inference provider.

Each provider gets a request builder and a response parser; ProviderClient
picks the pair for a credential, posts with a shared httpx.AsyncClient and
returns a uniform GenerationResponse.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

import httpx
from pydantic import BaseModel, ConfigDict, Field

from core.config import Settings
from core.logging import get_logger, log_provider_call
from .errors import ProviderError, UnknownProviderError
from .registry import (
    ANTHROPIC, GEMINI, GROQ, HUGGINGFACE, OPENAI, OPENROUTER,
    PROVIDER_CONFIGS, Credential, get_model_for_provider,
)

logger = get_logger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"
OPENAI_URL = "https://api.openai.com/v1/chat/completions"
ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"
GROQ_URL = "https://api.groq.com/openai/v1/chat/completions"
HUGGINGFACE_BASE_URL = "https://api-inference.huggingface.co/models"

DEFAULT_IMAGE_MIME = "image/jpeg"
NO_RESPONSE_TEXT = "No response generated"

_DATA_URL = re.compile(r"^data:(?P<mime>[^;,]+);base64,(?P<data>.+)$", re.DOTALL)


class GenerationRequest(BaseModel):
    """A single text generation request, optionally with one image."""
    model_config = ConfigDict(populate_by_name=True)

    prompt: str = Field(..., min_length=1)
    system_prompt: Optional[str] = Field(default=None, alias="systemPrompt")
    model: Optional[str] = None
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=2048, ge=1, le=8192, alias="maxTokens")
    image_data: Optional[str] = Field(default=None, alias="imageData")


@dataclass
class GenerationResponse:
    """Uniform result of a generation, whatever produced it."""
    text: str
    model: str
    provider: str
    cached: bool = False
    fallback: bool = False
    usage: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "text": self.text,
            "model": self.model,
            "provider": self.provider,
            "cached": self.cached,
            "fallback": self.fallback,
            "usage": self.usage,
        }
        if self.error:
            d["error"] = self.error
        return d


def parse_image_data(image_data: str) -> Tuple[str, str]:
    """Split a data URL into (mime_type, base64_payload).

    Bare base64 strings are accepted and assumed to be JPEG.
    """
    match = _DATA_URL.match(image_data)
    if match:
        return match.group("mime"), match.group("data")
    return DEFAULT_IMAGE_MIME, image_data


def to_data_url(image_data: str) -> str:
    mime, data = parse_image_data(image_data)
    return f"data:{mime};base64,{data}"


# =============================================================================
# REQUEST BUILDERS
# =============================================================================

def _build_gemini(request: GenerationRequest, model: str, api_key: str,
                  settings: Settings) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
    parts: list = [{"text": request.prompt}]
    if request.image_data:
        mime, data = parse_image_data(request.image_data)
        parts.append({"inline_data": {"mime_type": mime, "data": data}})

    payload: Dict[str, Any] = {
        "contents": [{"role": "user", "parts": parts}],
        "generationConfig": {
            "temperature": request.temperature,
            "maxOutputTokens": request.max_tokens,
        },
    }
    if request.system_prompt:
        payload["systemInstruction"] = {"parts": [{"text": request.system_prompt}]}

    headers = {"x-goog-api-key": api_key, "Content-Type": "application/json"}
    return f"{GEMINI_BASE_URL}/{model}:generateContent", headers, payload


def _chat_messages(request: GenerationRequest, image_note: Optional[str]) -> list:
    """OpenAI-style message list.

    With image_note=None the image is sent as an image_url content part;
    otherwise the provider cannot see images and the note is appended to the
    prompt instead.
    """
    messages = []
    if request.system_prompt:
        messages.append({"role": "system", "content": request.system_prompt})

    if request.image_data and image_note is None:
        messages.append({
            "role": "user",
            "content": [
                {"type": "text", "text": request.prompt},
                {"type": "image_url", "image_url": {"url": to_data_url(request.image_data)}},
            ],
        })
    elif request.image_data:
        messages.append({"role": "user", "content": f"{request.prompt}\n{image_note}"})
    else:
        messages.append({"role": "user", "content": request.prompt})
    return messages


def _build_openai(request, model, api_key, settings):
    payload = {
        "model": model,
        "messages": _chat_messages(request, image_note=None),
        "temperature": request.temperature,
        "max_tokens": request.max_tokens,
    }
    headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
    return OPENAI_URL, headers, payload


def _build_anthropic(request, model, api_key, settings):
    if request.image_data:
        mime, data = parse_image_data(request.image_data)
        content: Any = [
            {"type": "image", "source": {"type": "base64", "media_type": mime, "data": data}},
            {"type": "text", "text": request.prompt},
        ]
    else:
        content = request.prompt

    payload: Dict[str, Any] = {
        "model": model,
        "max_tokens": request.max_tokens,
        # Anthropic caps temperature at 1.0
        "temperature": min(request.temperature, 1.0),
        "messages": [{"role": "user", "content": content}],
    }
    if request.system_prompt:
        payload["system"] = request.system_prompt

    headers = {
        "x-api-key": api_key,
        "anthropic-version": ANTHROPIC_VERSION,
        "Content-Type": "application/json",
    }
    return ANTHROPIC_URL, headers, payload


def _build_openrouter(request, model, api_key, settings):
    payload = {
        "model": model,
        "messages": _chat_messages(request, image_note="[Image provided]"),
        "temperature": request.temperature,
        "max_tokens": request.max_tokens,
    }
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
        "HTTP-Referer": settings.app_url,
        "X-Title": settings.app_title,
    }
    return OPENROUTER_URL, headers, payload


def _build_groq(request, model, api_key, settings):
    payload = {
        "model": model,
        "messages": _chat_messages(request, image_note="[Image provided - processing as text]"),
        "temperature": request.temperature,
        "max_tokens": request.max_tokens,
    }
    headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
    return GROQ_URL, headers, payload


def _build_huggingface(request, model, api_key, settings):
    prompt = request.prompt
    if request.system_prompt:
        prompt = f"{request.system_prompt}\n\n{prompt}"
    if request.image_data:
        prompt = f"{prompt}\n[Image provided]"

    payload = {
        "inputs": prompt,
        "parameters": {
            "temperature": request.temperature,
            "max_new_tokens": request.max_tokens,
            "return_full_text": False,
        },
    }
    headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
    return f"{HUGGINGFACE_BASE_URL}/{model}", headers, payload


# =============================================================================
# RESPONSE PARSERS
# =============================================================================

def _parse_gemini(data: Dict[str, Any], model: str) -> Tuple[str, str, Dict[str, Any]]:
    candidates = data.get("candidates") or []
    text = ""
    if candidates:
        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts)
    meta = data.get("usageMetadata") or {}
    usage = {
        "prompt_tokens": meta.get("promptTokenCount"),
        "completion_tokens": meta.get("candidatesTokenCount"),
        "total_tokens": meta.get("totalTokenCount"),
    }
    return text, data.get("modelVersion") or model, usage


def _parse_chat(data: Dict[str, Any], model: str) -> Tuple[str, str, Dict[str, Any]]:
    choices = data.get("choices") or []
    text = ""
    if choices:
        text = (choices[0].get("message") or {}).get("content") or ""
    return text, data.get("model") or model, data.get("usage") or {}


def _parse_anthropic(data: Dict[str, Any], model: str) -> Tuple[str, str, Dict[str, Any]]:
    text = "".join(
        block.get("text", "") for block in data.get("content") or []
        if block.get("type") == "text"
    )
    usage = data.get("usage") or {}
    return text, data.get("model") or model, {
        "prompt_tokens": usage.get("input_tokens"),
        "completion_tokens": usage.get("output_tokens"),
    }


def _parse_huggingface(data: Any, model: str) -> Tuple[str, str, Dict[str, Any]]:
    if isinstance(data, list) and data:
        data = data[0]
    text = data.get("generated_text", "") if isinstance(data, dict) else ""
    return text, model, {}


RequestBuilder = Callable[[GenerationRequest, str, str, Settings],
                          Tuple[str, Dict[str, str], Dict[str, Any]]]
ResponseParser = Callable[[Any, str], Tuple[str, str, Dict[str, Any]]]

PROVIDER_ADAPTERS: Dict[str, Tuple[RequestBuilder, ResponseParser]] = {
    GEMINI: (_build_gemini, _parse_gemini),
    OPENAI: (_build_openai, _parse_chat),
    ANTHROPIC: (_build_anthropic, _parse_anthropic),
    OPENROUTER: (_build_openrouter, _parse_chat),
    GROQ: (_build_groq, _parse_chat),
    HUGGINGFACE: (_build_huggingface, _parse_huggingface),
}


def _error_detail(response: httpx.Response) -> str:
    """Best-effort message from an error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            return str(error.get("message") or error)
        if error:
            return str(error)
    return response.text[:500]


class ProviderClient:
    """Sends generation requests to providers over a shared HTTP client."""

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._http = http_client or httpx.AsyncClient(timeout=settings.ai_timeout)

    async def generate(self, credential: Credential,
                       request: GenerationRequest) -> GenerationResponse:
        """Run one request against one credential.

        Raises:
            ProviderError: non-2xx status, error payload or malformed body
            UnknownProviderError: no adapter for the credential's provider
            httpx.HTTPError: transport failure
        """
        adapter = PROVIDER_ADAPTERS.get(credential.provider)
        if adapter is None:
            raise UnknownProviderError(f"Unknown provider: {credential.provider}")
        build, parse = adapter
        display_name = PROVIDER_CONFIGS[credential.provider].display_name

        model = get_model_for_provider(request.model, credential.provider)
        url, headers, payload = build(request, model, credential.api_key, self.settings)

        try:
            response = await self._http.post(url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            log_provider_call(logger, credential.provider, model, False,
                              key=credential.masked_key, error=str(e))
            raise

        if response.status_code >= 400:
            detail = _error_detail(response)
            log_provider_call(logger, credential.provider, model, False,
                              key=credential.masked_key, status_code=response.status_code)
            raise ProviderError(
                f"{display_name} API error ({response.status_code}): {detail}",
                provider=credential.provider,
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(f"{display_name} API error: malformed response ({e})",
                                provider=credential.provider,
                                status_code=response.status_code) from e

        if isinstance(data, dict) and data.get("error"):
            error = data["error"]
            message = error.get("message") if isinstance(error, dict) else error
            raise ProviderError(f"{display_name} API error: {message}",
                                provider=credential.provider)

        try:
            text, resolved_model, usage = parse(data, model)
        except (AttributeError, KeyError, IndexError, TypeError) as e:
            log_provider_call(logger, credential.provider, model, False,
                              key=credential.masked_key, error="malformed response")
            raise ProviderError(
                f"{display_name} API error: malformed response ({type(e).__name__}: {e})",
                provider=credential.provider,
                status_code=response.status_code,
            ) from e
        log_provider_call(logger, credential.provider, resolved_model, True,
                          key=credential.masked_key)
        return GenerationResponse(
            text=text or NO_RESPONSE_TEXT,
            model=resolved_model,
            provider=credential.provider,
            usage={k: v for k, v in usage.items() if v is not None},
        )

    async def aclose(self) -> None:
        await self._http.aclose()
