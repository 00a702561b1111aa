"""Synthesis, direction recommendation and prior-echo selection routes."""

from fastapi import APIRouter, Depends

from card_engine import CardEngine
from deps import get_card_engine
from echoes import select_prior_echoes
from schemas import (
    PriorEchoSelectRequest,
    PriorEchoSelectResponse,
    RecommendRequest,
    RecommendResponse,
    SynthesisResponse,
    SynthesizeRequest,
)

router = APIRouter(prefix="/api", tags=["directions"])


@router.post("/synthesize", response_model=SynthesisResponse)
async def synthesize(request: SynthesizeRequest, engine: CardEngine = Depends(get_card_engine)):
    return await engine.synthesize(request)


@router.post("/recommend-directions", response_model=RecommendResponse)
async def recommend_directions(request: RecommendRequest, engine: CardEngine = Depends(get_card_engine)):
    return await engine.recommend(request)


@router.post("/prior-echoes/select", response_model=PriorEchoSelectResponse)
async def select_echoes(request: PriorEchoSelectRequest, engine: CardEngine = Depends(get_card_engine)):
    echoes = select_prior_echoes(
        request.query_embedding,
        request.candidates,
        request.session_id or "",
        engine.config,
    )
    return PriorEchoSelectResponse(prior_echoes=echoes)
