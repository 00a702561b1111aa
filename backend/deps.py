"""Shared FastAPI dependencies used across route modules."""

from functools import lru_cache

from card_engine import CardEngine
from engine_config import load_engine_config
from llm_service import llm_service


@lru_cache(maxsize=1)
def get_card_engine() -> CardEngine:
    return CardEngine(
        config=load_engine_config(),
        generate_json=llm_service.generate_json,
        generate_text=llm_service.generate_text,
        embed=llm_service.embed,
    )
