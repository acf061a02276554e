"""FastAPI app entry."""

from __future__ import annotations

from fastapi import FastAPI

from ampgate.adapters.amp.router import router as amp_router
from ampgate.config.profiles import YamlProfileResolver
from ampgate.config.settings import settings
from ampgate.core.http_client import build_tool_client, build_upstream_client
from ampgate.core.processor import AmpProcessor
from ampgate.util.logger import logger

app = FastAPI(title=settings.app_name)


@app.get("/health")
def health() -> dict:
    logger.info("health check")
    return {"status": "ok"}


@app.on_event("startup")
async def startup_clients() -> None:
    app.state.upstream_client = build_upstream_client()
    app.state.tool_client = build_tool_client()
    app.state.processor = AmpProcessor(YamlProfileResolver(), app.state.tool_client)
    logger.info("ampgate started env=%s profiles=%s", settings.env, settings.profiles_path)


@app.on_event("shutdown")
async def shutdown_clients() -> None:
    for name in ("upstream_client", "tool_client"):
        client = getattr(app.state, name, None)
        if client is not None:
            await client.aclose()
            setattr(app.state, name, None)


# catch-all 必须最后注册，否则会吞掉 /health
app.include_router(amp_router)
