from fastapi import APIRouter, Depends
from fastapi.responses import Response
from pydantic import BaseModel

from qualia_chat.services import SpeechClient
from qualia_chat.services.speech import DEFAULT_VOICE
from qualia_server.dependencies import get_speech_client

router = APIRouter(prefix="/api", tags=["speech"])

NO_STORE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


class SpeechRequest(BaseModel):
    text: str
    voice: str = DEFAULT_VOICE
    rate: str = "1"
    pitch: str = "1"


@router.post("/text-to-speech")
async def text_to_speech(
    body: SpeechRequest,
    client: SpeechClient = Depends(get_speech_client),
) -> Response:
    audio = await client.synthesize(body.text, voice=body.voice, rate=body.rate, pitch=body.pitch)
    return Response(content=audio.content, media_type=audio.media_type, headers=NO_STORE_HEADERS)
