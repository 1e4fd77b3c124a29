"""
OnDevice AI server — the facade over HTTP.

One OnDeviceAI instance per process, built from env config and closed on
shutdown. Routes live in ondevice_ai.http.routes.

Run: uv run uvicorn ondevice_ai.main:create_app --factory --port 8765
 or: ondevice-ai
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.responses import JSONResponse

import ondevice_ai.core.config as _config_mod
from ondevice_ai.client import OnDeviceAI
from ondevice_ai.core.config import OnDeviceConfig
from ondevice_ai.core.logging import setup_logging
from ondevice_ai.http.routes import create_router

logger = logging.getLogger("ondevice_ai")

VERSION = "0.1.0"


def create_app(
    config: OnDeviceConfig | None = None,
    client: OnDeviceAI | None = None,
) -> FastAPI:
    """Build the FastAPI app around a facade (created from config if not given)."""
    cfg = config or (client.config if client else _config_mod.config)
    ai = client or OnDeviceAI.from_config(cfg)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "OnDevice AI ready (backend=%s, model=%s, policy=%s)",
            cfg.backend.provider,
            cfg.backend.model,
            cfg.generation.session_policy,
        )
        yield
        await ai.aclose()
        logger.info("OnDevice AI stopped")

    app = FastAPI(title="OnDevice AI", version=VERSION, lifespan=lifespan)
    app.state.client = ai
    app.include_router(create_router(ai))

    @app.get("/config")
    async def get_config() -> JSONResponse:
        """Return the running configuration (no secrets)."""
        return JSONResponse(
            {
                "backend": {
                    "provider": cfg.backend.provider,
                    "base_url": cfg.backend.base_url,
                    "model": cfg.backend.model,
                    "summarize_model": cfg.backend.model_for("summarize"),
                    "rewrite_model": cfg.backend.model_for("rewrite"),
                },
                "generation": {
                    "temperature": cfg.generation.temperature,
                    "max_tokens": cfg.generation.max_tokens,
                    "session_policy": cfg.generation.session_policy,
                },
                "version": VERSION,
            }
        )

    return app


def main() -> None:
    setup_logging()
    cfg = _config_mod.config
    uvicorn.run(
        create_app(cfg),
        host=cfg.server.host,
        port=cfg.server.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
