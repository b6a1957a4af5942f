from __future__ import annotations

import logging
from pathlib import Path

from fastapi import FastAPI

from word_oracle.api.deps import peek_rotation_loop
from word_oracle.api.routes import router
from word_oracle.wordlist import init_word_tiers

app = FastAPI(title="word-oracle", version="0.1.0")
app.include_router(router)
# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

_project_root = Path(__file__).resolve().parents[1]


@app.on_event("startup")
async def _startup() -> None:
    init_word_tiers(project_root=_project_root)


@app.on_event("shutdown")
async def _shutdown() -> None:
    loop = peek_rotation_loop()
    if loop is None or not loop.stop():
        return
    try:
        await loop.wait_stopped(timeout=5)
    except TimeoutError:
        logger.warning("Rotation pass still in flight at shutdown")


@app.get("/info")
async def info() -> dict[str, str]:
    return {"name": "word-oracle", "version": "0.1.0"}
