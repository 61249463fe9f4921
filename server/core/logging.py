"""Structured logging for the workflow engine and provider pool."""

import sys
import structlog
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional
from core.config import Settings

# Third-party loggers that drown out engine events below WARNING
NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore")

# Event keys that may carry raw credentials
SECRET_FIELDS = frozenset(["api_key", "authorization", "x-api-key", "x-goog-api-key"])


def mask_key(api_key: Optional[str], visible: int = 8) -> str:
    """Shorten an API key for log output."""
    if not api_key:
        return ""
    return f"{api_key[:visible]}..."


def redact_secrets(logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """structlog processor: mask credential-bearing fields before rendering."""
    for name in SECRET_FIELDS.intersection(event_dict):
        event_dict[name] = mask_key(str(event_dict[name]))
    return event_dict


def _build_handlers(settings: Settings, level: int) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if settings.log_file:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))
    for handler in handlers:
        handler.setLevel(level)
    return handlers


def configure_logging(settings: Settings) -> None:
    """Route structlog through stdlib logging with a JSON or console renderer."""
    level = getattr(logging, settings.log_level)
    logging.basicConfig(level=level, handlers=_build_handlers(settings, level),
                        format="%(message)s", force=True)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if settings.log_format == "json":
        processors.insert(0, structlog.processors.TimeStamper(fmt="iso", utc=True))
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.insert(0, structlog.processors.TimeStamper(fmt="%H:%M:%S"))
        processors.append(structlog.dev.ConsoleRenderer(colors=False, pad_event=40))

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    return structlog.get_logger(name)


def log_execution_time(logger: structlog.BoundLogger, operation: str,
                       start_time: float, end_time: float, **kwargs) -> None:
    """Log how long an operation took, in milliseconds."""
    logger.info(
        "Operation finished",
        operation=operation,
        duration_ms=round((end_time - start_time) * 1000, 1),
        **kwargs
    )


def log_provider_call(logger: structlog.BoundLogger, provider: str, model: str,
                      success: bool, **kwargs) -> None:
    """One line per HTTP round trip to an inference provider."""
    log = logger.info if success else logger.warning
    log("Provider call", provider=provider, model=model, success=success, **kwargs)


def log_cache_operation(logger: structlog.BoundLogger, operation: str,
                        key: str, hit: Optional[bool] = None) -> None:
    """Debug trace for response cache reads and writes."""
    if hit is None:
        logger.debug("Response cache", operation=operation, cache_key=key)
    else:
        logger.debug("Response cache", operation=operation, cache_key=key, cache_hit=hit)
