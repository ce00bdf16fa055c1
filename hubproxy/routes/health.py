from typing import Literal

from fastapi import APIRouter
from typing_extensions import TypedDict

from hubproxy.settings import settings

router = APIRouter(tags=["Health"])


class HealthResponse(TypedDict):
    status: Literal["pass"]
    version: str


@router.get("/health", responses={200: {"model": HealthResponse}})
async def health():
    return {"status": "pass", "version": settings.VERSION}
