from .cards import router as cards_router
from .directions import router as directions_router

__all__ = ["cards_router", "directions_router"]
