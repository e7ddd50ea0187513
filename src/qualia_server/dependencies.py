from fastapi import Request

from qualia_chat.services import SpeechClient, WebSearchClient

__all__ = ["get_search_client", "get_speech_client"]


def get_search_client(request: Request) -> WebSearchClient:
    return request.app.state.search_client


def get_speech_client(request: Request) -> SpeechClient:
    return request.app.state.speech_client
