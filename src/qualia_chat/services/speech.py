"""Text-to-speech synthesis with an audio cache."""

import logging
from dataclasses import dataclass

import httpx

from qualia_chat.cache import BoundedCache
from qualia_chat.errors import ProviderUnavailable

logger = logging.getLogger(__name__)

DEFAULT_VOICE = "en-US-JennyNeural"

SpeechKey = tuple[str, str, str, str]


@dataclass(frozen=True)
class SpeechAudio:
    content: bytes
    media_type: str


def voice_language(voice: str) -> str:
    return "el" if voice.lower().startswith("el") else "en"


class SpeechClient:
    """Fetches synthesized audio, falling back to a secondary service.

    Audio for the same text, voice, rate and pitch never changes, so the
    cache is bounded by size only.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        cache: BoundedCache[SpeechKey, SpeechAudio],
        url: str = "https://freetts.com/Home/PlayAudio",
        fallback_url: str = "https://translate.google.com/translate_tts",
    ):
        self.http = http
        self.cache = cache
        self.url = url
        self.fallback_url = fallback_url

    async def synthesize(
        self, text: str, voice: str = DEFAULT_VOICE, rate: str = "1", pitch: str = "1"
    ) -> SpeechAudio:
        if not text.strip():
            raise ValueError("Text parameter is required")
        voice = voice or DEFAULT_VOICE
        key: SpeechKey = (text, voice, str(rate), str(pitch))
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        try:
            audio = await self._primary(text, voice)
        except httpx.HTTPError as e:
            logger.warning(f"Primary TTS service failed, using fallback: {e}")
            try:
                audio = await self._fallback(text, voice)
            except httpx.HTTPError as fallback_error:
                logger.error(f"Fallback TTS service failed: {fallback_error}")
                raise ProviderUnavailable(
                    "Text-to-speech services unavailable",
                    offline=isinstance(fallback_error, httpx.ConnectError),
                    user_message="Failed to process text-to-speech request. Please try again.",
                ) from fallback_error

        self.cache.put(key, audio)
        return audio

    async def _primary(self, text: str, voice: str) -> SpeechAudio:
        language = "el" if voice_language(voice) == "el" else "en-us"
        response = await self.http.get(
            self.url,
            params={"Language": language, "Voice": voice, "TextMessage": text, "Speed": 0, "AudioFormat": "wav"},
        )
        response.raise_for_status()
        return SpeechAudio(content=response.content, media_type="audio/wav")

    async def _fallback(self, text: str, voice: str) -> SpeechAudio:
        response = await self.http.get(
            self.fallback_url,
            params={"ie": "UTF-8", "q": text, "tl": voice_language(voice), "client": "tw-ob"},
        )
        response.raise_for_status()
        return SpeechAudio(content=response.content, media_type="audio/mpeg")
