"""Dialogue card routes: next work-block, framing, title, anchor-summary indexing, telemetry."""

from fastapi import APIRouter, Depends

from card_engine import CardEngine
from deps import get_card_engine
from schemas import (
    CardResponse,
    FramingRequest,
    FramingResponse,
    IndexSummaryRequest,
    IndexSummaryResponse,
    NextCardRequest,
    TitleRequest,
    TitleResponse,
)
from telemetry import read_card_telemetry_summary

router = APIRouter(prefix="/api", tags=["cards"])


@router.post("/work-block/next", response_model=CardResponse)
async def next_work_block(request: NextCardRequest, engine: CardEngine = Depends(get_card_engine)):
    """Next question card, or a closure card when the dialogue should stop."""
    return await engine.next_card(request)


@router.post("/frame", response_model=FramingResponse)
async def frame_dream(request: FramingRequest, engine: CardEngine = Depends(get_card_engine)):
    """Supportive framing plus three recommended directions with reasons."""
    return await engine.frame(request)


@router.post("/titles", response_model=TitleResponse)
async def generate_title(request: TitleRequest, engine: CardEngine = Depends(get_card_engine)):
    return await engine.generate_title(request)


@router.post("/index-summary", response_model=IndexSummaryResponse)
async def index_summary(request: IndexSummaryRequest, engine: CardEngine = Depends(get_card_engine)):
    return await engine.index_summary(request)


@router.get("/cards/telemetry/summary")
async def get_card_telemetry_summary(hours: int = 24, limit: int = 6):
    return read_card_telemetry_summary(hours=hours, limit=limit)
