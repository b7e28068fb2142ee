"""FastAPI application factory for the video tagging service."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from revvision.api import entries, routes
from revvision.api.middleware import AccessLogMiddleware, setup_cors
from revvision.auth.singleflight import SingleFlight
from revvision.config import Settings, get_settings
from revvision.extractor.frame import FFmpegFrameExtractor
from revvision.pipeline.media import MediaStore
from revvision.pipeline.notify import Notifier
from revvision.pipeline.orchestrator import ProcessingOrchestrator
from revvision.shared.enums import PipelineMode
from revvision.tagging.gemini import GeminiClient

logger = logging.getLogger(__name__)


def build_orchestrator(settings: Settings) -> ProcessingOrchestrator:
    """Wire the production extractor, Gemini client and media spool."""
    gemini = GeminiClient(
        settings.gemini_api_key,
        model=settings.gemini_model,
        base_url=settings.gemini_base_url,
        timeout=settings.http_timeout_seconds,
    )
    if not settings.gemini_api_key:
        logger.warning("REVVISION_GEMINI_API_KEY is not set; every tagging call will fail")

    return ProcessingOrchestrator(
        extractor=FFmpegFrameExtractor(
            ffmpeg_bin=settings.ffmpeg_bin,
            ffprobe_bin=settings.ffprobe_bin,
            timeout=settings.frame_timeout_seconds,
            quality=settings.frame_jpeg_quality,
        ),
        tagger=gemini,
        refiner=gemini,
        media=MediaStore(settings.media_dir),
        notifier=Notifier(history=settings.notice_history),
        mode=PipelineMode(settings.pipeline_mode),
        concurrency=settings.pipeline_concurrency,
        stage_timeout=settings.stage_timeout_seconds,
        feedback_min_length=settings.feedback_min_length,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Cancel in-flight pipelines and drop spooled media on shutdown."""
    orchestrator: ProcessingOrchestrator = app.state.orchestrator
    logger.info("processing queue ready (mode=%s)", orchestrator.mode.value)
    try:
        yield
    finally:
        await orchestrator.shutdown()


def create_app(
    settings: Settings | None = None,
    *,
    orchestrator: ProcessingOrchestrator | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(title="RevspotVision", lifespan=lifespan)
    app.state.settings = settings
    app.state.refresh_guard = SingleFlight()
    app.state.orchestrator = orchestrator or build_orchestrator(settings)
    setup_cors(app, settings.allowed_origins)
    app.add_middleware(AccessLogMiddleware)
    app.include_router(routes.router)
    app.include_router(entries.router)
    return app
