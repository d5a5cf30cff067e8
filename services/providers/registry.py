"""Map provider kinds to their adapters."""

from __future__ import annotations

from typing import Dict, Mapping, Optional, Union

from models.session_models import ProviderKind
from services.providers.base import ProviderAdapter
from services.providers.gemini_chat import GeminiChatAdapter
from services.providers.openai_chat import OpenAIChatAdapter
from services.providers.openai_realtime import OpenAIRealtimeAdapter
from services.realtime.errors import UnsupportedProvider


def default_adapters() -> Dict[ProviderKind, ProviderAdapter]:
    """Return one adapter instance per supported provider."""
    adapters = (OpenAIRealtimeAdapter(), OpenAIChatAdapter(), GeminiChatAdapter())
    return {adapter.kind: adapter for adapter in adapters}


def resolve_adapter(
    adapters: Mapping[ProviderKind, ProviderAdapter], provider: Union[ProviderKind, str, None]
) -> ProviderAdapter:
    """Return the adapter for a provider or raise UnsupportedProvider."""
    kind: Optional[ProviderKind]
    try:
        kind = ProviderKind(provider)
    except ValueError:
        kind = None
    adapter = adapters.get(kind) if kind is not None else None
    if adapter is None:
        raise UnsupportedProvider(f"Unsupported AI provider: {provider!r}")
    return adapter
