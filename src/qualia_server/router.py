from fastapi import APIRouter

from qualia_server.routers.search import router as search_router
from qualia_server.routers.speech import router as speech_router

router = APIRouter()
router.include_router(search_router)
router.include_router(speech_router)
