"""FastAPI application entrypoint for the talking-photo generator."""
from __future__ import annotations

import logging

from fastapi import FastAPI

from .config import settings
from .routers import runs

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Instantiate and configure the FastAPI application."""

    application = FastAPI(
        title="Talking Photo Generator",
        description=(
            "Turns an avatar image plus a script or voice clip into a talking-head "
            "video using ElevenLabs and HeyGen."
        ),
        version="0.1.0",
    )
    application.include_router(runs.router)

    @application.get("/")
    async def root() -> dict[str, str]:
        """Lightweight health endpoint for service discovery."""
        return {"service": "talking-photo", "status": "ok"}

    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
