from __future__ import annotations

from enum import Enum
from urllib.parse import urlsplit

_AZURE_OPENAI_SUFFIX = ".openai.azure.com"
_AZURE_COGNITIVE_SERVICES_SUFFIX = ".cognitiveservices.azure.com"


class ProviderVariant(str, Enum):
    STANDARD = "standard"
    AZURE_OPENAI = "azure_openai"
    AZURE_COGNITIVE_SERVICES = "azure_cognitive_services"

    @property
    def is_azure(self) -> bool:
        return self is not ProviderVariant.STANDARD


def _host(base_url: str) -> str:
    try:
        parts = urlsplit(base_url.strip())
        host = parts.hostname
    except ValueError:
        return ""
    if not host and not parts.scheme:
        # Scheme-less input such as "myres.openai.azure.com/openai"
        try:
            host = urlsplit(f"//{base_url.strip()}").hostname
        except ValueError:
            return ""
    return (host or "").lower()


def classify(base_url: str | None) -> ProviderVariant:
    """
    Classify a configured base URL into the backend variant it targets.

    Total and side-effect free: anything that cannot be parsed is STANDARD.
    """
    if not base_url or not isinstance(base_url, str):
        return ProviderVariant.STANDARD
    host = _host(base_url)
    if host.endswith(_AZURE_OPENAI_SUFFIX):
        return ProviderVariant.AZURE_OPENAI
    if host.endswith(_AZURE_COGNITIVE_SERVICES_SUFFIX):
        return ProviderVariant.AZURE_COGNITIVE_SERVICES
    return ProviderVariant.STANDARD
