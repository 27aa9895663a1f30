from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.routes.sessions import router as sessions_router
from src.config import settings
from src.generation.client import AnthropicTextGenerator
from src.generation.scheduler import RequestScheduler
from src.pipeline.session import SessionListener, SessionRegistry
from src.pipeline_config import PipelineConfig
from src.storage.summaries import SupabaseSummarySink

logger = logging.getLogger(__name__)


def build_registry() -> SessionRegistry:
    """One registry per process: every session shares a single scheduler."""
    config = PipelineConfig.from_settings(settings)
    listeners: list[SessionListener] = []
    if settings.supabase_url and settings.supabase_key:
        listeners.append(SupabaseSummarySink())
    else:
        logger.info("Supabase not configured, summaries will not be persisted")
    return SessionRegistry(
        RequestScheduler(config.scheduler),
        AnthropicTextGenerator(settings),
        config,
        listeners,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    app.state.registry = build_registry()
    try:
        yield
    finally:
        await app.state.registry.aclose()


app = FastAPI(
    title="Live Meeting Summary API",
    description="Incremental, rate-limited summarization of live meeting transcripts",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:8501",
    ],
    allow_origin_regex=r"http://localhost:\d+",
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(sessions_router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}


def run() -> None:
    """Serve the API on the configured host and port."""
    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_level="info")


if __name__ == "__main__":
    run()
