from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api import router
from datastore.credentials import build_default_credential_store
from datastore.readings import build_default_reading_store
from logging_config import configure_logging
from services.agent import build_default_agent


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    agent = build_default_agent()
    await agent.start()
    try:
        yield
    finally:
        await agent.shutdown()
        build_default_agent.cache_clear()
        build_default_credential_store.cache_clear()
        build_default_reading_store.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Nest State Logger",
        description="Polls the thermostat vendor's state snapshots with a captured session token.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app

app = create_app()
