from __future__ import annotations

import contextlib
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
    from endpoints.storage_endpoints import ERROR_LOG, FOLDER_CONFIG

    ERROR_LOG.attach()
    record = FOLDER_CONFIG.get()
    if record is None:
        logger.info("No shared folder configured yet; reads return defaults until one is selected")
    else:
        logger.info("Shared folder: %s", record.storage_path)
    try:
        yield
    finally:
        ERROR_LOG.detach()


def create_app() -> FastAPI:
    load_dotenv("local.env")

    from endpoints.storage_endpoints import router as storage_router

    app = FastAPI(lifespan=lifespan)

    # The schedule UI runs from a local dev server or file:// origin.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health():
        return {"ok": True}

    app.include_router(storage_router)

    return app


app = create_app()
