from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

from . import __version__
from .core.logging_config import setup_logging
from .routes.templates import router as templates_router

load_dotenv()
setup_logging()

app = FastAPI(title="scriptplate API", version=__version__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(templates_router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}
