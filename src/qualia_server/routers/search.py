from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from qualia_chat.services import SearchResponse, WebSearchClient
from qualia_server.dependencies import get_search_client

router = APIRouter(prefix="/api", tags=["search"])


class SearchRequest(BaseModel):
    query: str
    num: int = Field(default=10, ge=1, le=10)
    start: int = Field(default=1, ge=1)
    lr: str = ""
    safe: str = "off"


@router.post("/search", response_model=SearchResponse)
async def search(
    body: SearchRequest,
    client: WebSearchClient = Depends(get_search_client),
) -> SearchResponse:
    return await client.search(body.query, num=body.num, start=body.start, lr=body.lr, safe=body.safe)
