"""Environment-driven configuration with Pydantic v2."""

from typing import List, Literal, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings driven entirely by environment variables."""

    # Server Configuration
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=3010, ge=1024, le=65535)
    debug: bool = Field(default=False)
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    # Logging
    log_level: str = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="json")
    log_file: Optional[str] = Field(default=None)

    # Provider API Keys (all optional; Gemini variables accept comma-separated lists)
    google_ai_api_key: Optional[str] = Field(default=None)
    gemini_api_key: Optional[str] = Field(default=None)
    google_generative_ai_api_key: Optional[str] = Field(default=None)
    openai_api_key: Optional[str] = Field(default=None)
    anthropic_api_key: Optional[str] = Field(default=None)
    openrouter_api_key: Optional[str] = Field(default=None)
    groq_api_key: Optional[str] = Field(default=None)
    huggingface_api_key: Optional[str] = Field(default=None)

    # Sent to OpenRouter for attribution
    app_url: str = Field(default="http://localhost:3000")
    app_title: str = Field(default="Mediaflow")

    # Provider calls
    ai_timeout: int = Field(default=60, ge=5, le=300)
    ai_max_retries: int = Field(default=3, ge=0, le=5)
    ai_retry_delay: float = Field(default=2.0, ge=0.0, le=10.0)
    ai_max_retry_delay: float = Field(default=30.0, ge=0.0, le=300.0)

    # Resilience state
    key_cooldown_seconds: int = Field(default=3600, ge=0)
    response_cache_ttl: int = Field(default=300, ge=0)
    response_cache_max_entries: int = Field(default=100, ge=1)

    # Return simulated generations without touching any provider
    llm_simulation_mode: bool = Field(default=False)

    # Multiplier for simulated processing latency of non-network nodes (0 disables)
    node_latency_scale: float = Field(default=1.0, ge=0.0, le=10.0)

    # Status streaming
    status_queue_size: int = Field(default=100, ge=1, le=10000)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Normalize and check the log level name."""
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {v}")
        return level

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.debug

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
        "env_parse_none_str": "none",
    }
