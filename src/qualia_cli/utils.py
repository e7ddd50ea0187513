from typing import Optional

import httpx
from openai import AsyncOpenAI
from rich.console import Console

from qualia_chat.cache import BoundedCache
from qualia_chat.connectivity import ConnectivityMonitor
from qualia_chat.gateway import AssistantsGateway, CachedGateway, LocalGateway, ProviderGateway, chat_completion
from qualia_chat.poller import RunPoller
from qualia_chat.queue import OfflineQueue
from qualia_chat.session import ConversationSession
from qualia_chat.storage import ClientStore
from qualia_core.config import settings

console = Console()


def get_client() -> AsyncOpenAI:
    return AsyncOpenAI(
        base_url=settings.openai_base_url,
        api_key=settings.openai_api_key,
        timeout=settings.request_timeout,
    )


def get_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=settings.request_timeout, follow_redirects=True)


def get_store() -> ClientStore:
    return ClientStore(settings.state_file)


def build_gateway(client: Optional[AsyncOpenAI] = None) -> ProviderGateway:
    """Provider selected by ``settings.provider``, behind the message cache."""
    client = client or get_client()
    inner: ProviderGateway
    if settings.provider == "local":
        inner = LocalGateway(chat_completion(client, settings.model), run_expiry=settings.run_expiry)
    else:
        if not settings.assistant_id:
            raise ValueError("QUALIA_ASSISTANT_ID is required for the assistants provider")
        inner = AssistantsGateway(client, settings.assistant_id)
    cache: BoundedCache = BoundedCache("messages", settings.message_cache_size, ttl=settings.message_cache_ttl)
    return CachedGateway(inner, cache)


def build_session(gateway: ProviderGateway, http: httpx.AsyncClient) -> ConversationSession:
    store = get_store()
    monitor = ConnectivityMonitor(
        probe_url=settings.connectivity_probe_url,
        client=http,
        interval=settings.connectivity_interval,
    )
    return ConversationSession(
        gateway,
        store,
        poller=RunPoller(gateway, interval=settings.poll_interval, max_wait=settings.poll_max_wait),
        queue=OfflineQueue(store),
        monitor=monitor,
        page_size=settings.page_size,
        system_prompt=settings.system_prompt,
        welcome_message=settings.welcome_message,
    )
