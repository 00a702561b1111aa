from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from deps import get_card_engine
from engine_config import _env_int
from errors import CardEngineError
from routes import cards_router, directions_router
from telemetry import append_card_telemetry


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # let detached synthesis refreshes finish before the loop closes
    await get_card_engine().side_tasks.drain()


app = FastAPI(
    title="Dreamcard API",
    description="Card progression and novelty control for dream reflection dialogues",
    version="1.0.0",
    lifespan=lifespan,
)


# CORS settings
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:8000",
        "http://127.0.0.1:8000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(cards_router)
app.include_router(directions_router)


@app.middleware("http")
async def utf8_charset_middleware(request: Request, call_next):
    response = await call_next(request)
    ct = response.headers.get("content-type", "")
    if "application/json" in ct and "charset" not in ct:
        response.headers["content-type"] = ct + "; charset=utf-8"
    return response


@app.exception_handler(CardEngineError)
async def card_engine_error_handler(request: Request, exc: CardEngineError):
    append_card_telemetry("request_error", {"path": request.url.path, "status": exc.status_code, "error": exc.message})
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": "Invalid request body"})


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.get("/")
async def root():
    return {
        "message": "Dreamcard API - reflection card engine",
        "version": "1.0.0",
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=_env_int("PORT", 8000, 1, 65535), reload=False)
