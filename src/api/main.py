"""
FastAPI app exposing stored earthquake events from the keyed store.
"""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import Iterator, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, Field

from src.services.errors import StoreError
from src.services.event_store import (
    DEFAULT_DB_PATH,
    DEFAULT_REGION,
    DEFAULT_TABLE_NAME,
    BaseEventStore,
    open_store,
)

MAX_ROWS = 5000
STATIC_DIR = Path(os.getenv("QUAKE_STATIC_DIR", "static"))
LOGGER = logging.getLogger("quake_api")
if not LOGGER.handlers:
    LOGGER.setLevel(logging.INFO)
    LOG_PATH = Path("logs")
    LOG_PATH.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(LOG_PATH / "api_requests.log")
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(message)s")
    file_handler.setFormatter(formatter)
    LOGGER.addHandler(file_handler)


def get_store() -> Iterator[BaseEventStore]:
    try:
        store = open_store(
            os.getenv("QUAKE_STORE_BACKEND", "sqlite").strip().lower(),
            db_path=Path(os.getenv("QUAKE_DB_PATH") or DEFAULT_DB_PATH),
            table_name=os.getenv("QUAKE_TABLE_NAME") or DEFAULT_TABLE_NAME,
            region=os.getenv("AWS_REGION") or DEFAULT_REGION,
        )
        store.ensure_ready()
    except (StoreError, ValueError) as exc:
        LOGGER.error("Unable to open event store: %s", exc)
        raise HTTPException(status_code=503, detail="event store unavailable") from exc
    try:
        yield store
    finally:
        store.close()


class EventOut(BaseModel):
    id: str
    lastUpdated: str
    injured: int = Field(..., ge=0)
    deaths: int = Field(..., ge=0)
    magnitude: float
    location: str
    date: str = Field(..., description="Event date as YYYY-MM-DD")
    refUrl: str


app = FastAPI(title="Earthquake Events API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    ip = request.client.host if request.client else "-"
    referer = request.headers.get("referer", "-")
    try:
        response = await call_next(request)
    except Exception:
        LOGGER.exception("%s %s failed ip=%s referer=%s", request.method, request.url.path, ip, referer)
        raise
    latency_ms = (time.perf_counter() - started) * 1000
    LOGGER.info(
        "%s %s status=%s ip=%s referer=%s latency=%.1fms",
        request.method,
        request.url.path,
        response.status_code,
        ip,
        referer,
        latency_ms,
    )
    return response


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/items", response_model=list[EventOut])
def get_items(
    limit: Optional[int] = Query(
        default=None,
        ge=1,
        le=MAX_ROWS,
        description="Maximum number of events to return, newest first. Omit to fetch every stored event.",
    ),
    store: BaseEventStore = Depends(get_store),
) -> list[EventOut]:
    LOGGER.info("Fetching events limit=%s", limit)
    try:
        records = store.scan()
    except StoreError as exc:
        LOGGER.error("Event scan failed: %s", exc)
        raise HTTPException(status_code=503, detail="event store unavailable") from exc
    if limit is not None:
        records = records[:limit]
    return [EventOut(**record.to_serializable()) for record in records]


# Mounted last so the API routes take precedence over static files.
if STATIC_DIR.is_dir():
    app.mount("/", StaticFiles(directory=STATIC_DIR, html=True), name="static")
