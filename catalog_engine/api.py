from __future__ import annotations

"""
FastAPI application serving the scored integration catalog.

- GET /health            liveness probe
- GET /api/catalog.json  the scored snapshot, camelCase keys, best first

The snapshot is loaded lazily on first request and cached for the process.
Ranking, filtering and paging all happen client-side in the catalog session.
"""

from functools import lru_cache
from typing import List

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from .catalog_build import load_catalog_snapshot
from .config import CatalogItem, HealthResponse
from .errors import CatalogLoadError


@lru_cache(maxsize=1)
def get_catalog() -> List[CatalogItem]:
    return load_catalog_snapshot()


app = FastAPI(title="HACS Catalog Engine")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET"],
    allow_headers=["*"],
)


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(status="healthy")


@app.get("/api/catalog.json")
def catalog_json():
    try:
        items = get_catalog()
    except CatalogLoadError as e:
        logger.error("Catalog unavailable: {}", e)
        raise HTTPException(status_code=503, detail="Catalog not available") from e
    return [item.model_dump(mode="json", by_alias=True) for item in items]
