"""Adapter selection by channel type."""

from typing import Dict, Iterable, Optional

import httpx

from src.config import Settings
from src.channels.domain.entities.channel_session import ChannelSession
from src.channels.domain.value_objects import ChannelType
from src.channels.infrastructure.adapters.base import ChannelAdapter
from src.channels.infrastructure.adapters.meta_graph import InstagramAdapter, MessengerAdapter
from src.channels.infrastructure.adapters.telegram_bot import TelegramBotAdapter
from src.channels.infrastructure.adapters.whatsapp_gateway import WhatsAppGatewayAdapter


class AdapterRegistry:
    """
    Holds one adapter instance per channel type.

    Business logic asks ``for_session(session)`` and never branches on the
    channel type itself.
    """

    def __init__(self, adapters: Iterable[ChannelAdapter]) -> None:
        self._adapters: Dict[ChannelType, ChannelAdapter] = {}
        for adapter in adapters:
            self.register(adapter)

    def register(self, adapter: ChannelAdapter) -> None:
        self._adapters[adapter.channel_type] = adapter

    def get(self, channel_type: ChannelType) -> ChannelAdapter:
        try:
            return self._adapters[ChannelType(channel_type)]
        except KeyError:
            raise LookupError(f"No adapter registered for channel type '{channel_type}'") from None

    def for_session(self, session: ChannelSession) -> ChannelAdapter:
        return self.get(session.channel_type)

    async def aclose(self) -> None:
        for adapter in self._adapters.values():
            await adapter.aclose()


def build_adapter_registry(settings: Settings, client: Optional[httpx.AsyncClient] = None) -> AdapterRegistry:
    """Build every provider adapter from settings, optionally sharing one HTTP client."""
    timeout = settings.HTTP_TIMEOUT_SECONDS
    meta_kwargs = dict(
        api_version=settings.META_GRAPH_API_VERSION,
        app_secret=settings.META_APP_SECRET,
        client=client,
        timeout=timeout,
    )
    return AdapterRegistry(
        [
            WhatsAppGatewayAdapter(settings.WHATSAPP_GATEWAY_URL, client=client, timeout=timeout),
            TelegramBotAdapter(settings.TELEGRAM_API_URL, client=client, timeout=timeout),
            MessengerAdapter(settings.META_GRAPH_URL, **meta_kwargs),
            InstagramAdapter(settings.META_GRAPH_URL, **meta_kwargs),
        ]
    )
