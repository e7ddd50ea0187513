from qualia_chat.gateway.assistants import AssistantsGateway
from qualia_chat.gateway.base import ProviderGateway
from qualia_chat.gateway.cached import CachedGateway, CachedPage
from qualia_chat.gateway.local import LocalGateway, chat_completion

__all__ = [
    "AssistantsGateway",
    "CachedGateway",
    "CachedPage",
    "LocalGateway",
    "ProviderGateway",
    "chat_completion",
]
