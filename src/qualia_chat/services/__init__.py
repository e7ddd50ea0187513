from qualia_chat.services.search import SearchResponse, SearchResult, WebSearchClient
from qualia_chat.services.speech import SpeechAudio, SpeechClient

__all__ = ["SearchResponse", "SearchResult", "SpeechAudio", "SpeechClient", "WebSearchClient"]
