from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, MutableMapping
from typing import TYPE_CHECKING, Any, TypeAlias, cast

import structlog

if TYPE_CHECKING:
    from .config import ProviderClientOptions

# Header and field names that carry credentials on OpenAI/Azure requests.
_SENSITIVE_KEYS = frozenset(
    {
        "authorization",
        "proxy-authorization",
        "api-key",
        "api_key",
        "apikey",
        "x-api-key",
        "openai_api_key",
        "ocp-apim-subscription-key",
    }
)

_BEARER_RE = re.compile(r"(?i)\bBearer\s+([A-Za-z0-9._~+/-]{6,}=*)")
_OPENAI_KEY_RE = re.compile(r"\bsk-[A-Za-z0-9_-]{8,}")

REDACTED = "[REDACTED]"

Processor: TypeAlias = Callable[[Any, str, MutableMapping[str, Any]], Any]


def redact_text(value: str, *, secrets: Iterable[str] = ()) -> str:
    for secret in secrets:
        if secret:
            value = value.replace(secret, REDACTED)
    value = _BEARER_RE.sub(f"Bearer {REDACTED}", value)
    return _OPENAI_KEY_RE.sub(REDACTED, value)


def redact(obj: Any, *, secrets: Iterable[str] = ()) -> Any:
    """Recursively scrub credentials out of a log payload."""
    secrets = tuple(secrets)
    if isinstance(obj, str):
        return redact_text(obj, secrets=secrets)
    if isinstance(obj, dict):
        return {
            k: REDACTED if str(k).lower() in _SENSITIVE_KEYS else redact(v, secrets=secrets)
            for k, v in obj.items()
        }
    if isinstance(obj, (list, tuple)):
        return type(obj)(redact(v, secrets=secrets) for v in obj)
    return obj


def redaction_processor(secrets: Iterable[str] = ()) -> Processor:
    known = tuple(s for s in secrets if isinstance(s, str) and s)

    def _processor(_logger: Any, _method_name: str, event_dict: MutableMapping[str, Any]) -> Any:
        return redact(dict(event_dict), secrets=known)

    return _processor


def configure_logging(level: str = "INFO", fmt: str = "json", *, secrets: list[str] | None = None) -> None:
    """
    Configure structlog for the provider.

    Redaction always runs; `secrets` adds literal values (for example the
    configured API key) to scrub from every string in the event.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=numeric_level)

    processors: list[Processor] = [
        cast(Processor, structlog.contextvars.merge_contextvars),
        cast(Processor, structlog.processors.add_log_level),
        cast(Processor, structlog.processors.TimeStamper(fmt="iso")),
        redaction_processor(secrets or ()),
    ]
    if fmt == "json":
        processors.append(cast(Processor, structlog.processors.JSONRenderer()))
    else:
        processors.append(cast(Processor, structlog.dev.ConsoleRenderer()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        cache_logger_on_first_use=True,
    )


def configure_logging_from_options(options: "ProviderClientOptions") -> None:
    configure_logging(
        options.log_level,
        options.log_format,
        secrets=[options.api_key] if options.api_key else None,
    )
