import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.markup import escape

from qualia_chat.cache import BoundedCache
from qualia_chat.errors import ChatError
from qualia_chat.services import SpeechAudio, SpeechClient
from qualia_chat.services.speech import DEFAULT_VOICE
from qualia_cli.utils import console, get_http_client
from qualia_core.config import settings

EXTENSIONS = {"audio/wav": ".wav", "audio/mpeg": ".mp3"}


async def run_speak(text: str, voice: str) -> SpeechAudio:
    async with get_http_client() as http:
        client = SpeechClient(
            http,
            BoundedCache("audio", settings.audio_cache_size),
            url=settings.tts_url,
            fallback_url=settings.tts_fallback_url,
        )
        return await client.synthesize(text, voice=voice)


def speak(
    text: str = typer.Argument(..., help="Text to speak"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Where to write the audio"),
    voice: str = typer.Option(DEFAULT_VOICE, "--voice", help="Voice name; voices starting with 'el' speak Greek"),
) -> None:
    """Convert text to speech and save the audio."""
    try:
        audio = asyncio.run(run_speak(text, voice))
    except ChatError as e:
        console.print(f"[red]{escape(e.user_message)}[/red]")
        raise typer.Exit(1)
    except ValueError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)

    path = output or Path("speech" + EXTENSIONS.get(audio.media_type, ".bin"))
    path.write_bytes(audio.content)
    console.print(f"Saved {len(audio.content)} bytes of {audio.media_type} to [cyan]{path}[/cyan]")
