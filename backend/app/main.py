from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from app.studio import DreamStudio
from routes import dreams, status_ws, videos
from services.config import GatewayConfig


def create_app(config: GatewayConfig | None = None, **studio_kwargs: Any) -> FastAPI:
    """
    Build the API. ``studio_kwargs`` go to DreamStudio (microphone, transport, timings),
    which lets tests swap the hardware and the remote services.
    """
    config = config or GatewayConfig.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # StaticFiles refuses to serve from a missing directory.
        config.video_dir.mkdir(parents=True, exist_ok=True)
        studio = DreamStudio(config, **studio_kwargs)
        app.state.studio = studio
        try:
            yield
        finally:
            app.state.studio = None
            await studio.close()

    app = FastAPI(title="Dream Visualizer API", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(dreams.router, prefix="/api")
    app.include_router(videos.router, prefix="/api")
    app.include_router(status_ws.router, prefix="/api")
    # Serves the local fallback videos under the /videos/<filename> URLs the gateway hands out.
    app.mount("/videos", StaticFiles(directory=config.video_dir, check_dir=False), name="videos")
    return app
