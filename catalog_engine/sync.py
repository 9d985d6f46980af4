from __future__ import annotations

"""
Download the upstream HACS integration documents into the data directory.

Two JSON documents are fetched: ``integration-data`` (an object keyed by
repository id) and ``integration-repositories`` (an array of full names).
Each one is validated for its top-level type and written pretty-printed.
A ``last-sync.json`` summary is always written, even when a fetch failed.

In strict mode (``HACS_FETCH_STRICT=true`` or ``CI=true``) any failure makes
the sync raise :class:`SyncError`; otherwise failures are logged and the
previous files are left in place.
"""

import argparse
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional

import httpx
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .config import (
    HACS_DATA_BASE_URL,
    HACS_DATA_DIR,
    HACS_FETCH_STRICT,
    HACS_FETCH_TIMEOUT_MS,
    HTTP_USER_AGENT,
)
from .errors import SyncError


class Endpoint(BaseModel):
    name: str
    url: str
    expected: str  # "object" | "array"
    file: str


ENDPOINTS: List[Endpoint] = [
    Endpoint(
        name="integration-data",
        url=f"{HACS_DATA_BASE_URL}/data.json",
        expected="object",
        file="integration-data.json",
    ),
    Endpoint(
        name="integration-repositories",
        url=f"{HACS_DATA_BASE_URL}/repositories.json",
        expected="array",
        file="integration-repositories.json",
    ),
]


class EndpointResult(BaseModel):
    name: str
    ok: bool
    file: Optional[str] = None
    error: Optional[str] = None


class SyncSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    generated_at: str
    strict_mode: bool
    timeout_ms: int
    results: List[EndpointResult] = Field(default_factory=list)

    @property
    def all_ok(self) -> bool:
        return all(r.ok for r in self.results)


def validate_payload_type(name: str, payload: Any, expected: str) -> None:
    if expected == "array" and not isinstance(payload, list):
        raise SyncError(f"{name}: expected an array but received {type(payload).__name__}")
    if expected == "object" and not isinstance(payload, dict):
        received = "array" if isinstance(payload, list) else type(payload).__name__
        raise SyncError(f"{name}: expected an object but received {received}")


def fetch_json(client: httpx.Client, url: str) -> Any:
    try:
        r = client.get(url, headers={"Accept": "application/json", "User-Agent": HTTP_USER_AGENT})
    except httpx.TimeoutException as e:
        raise SyncError(f"Request timed out: {url}") from e
    except httpx.HTTPError as e:
        raise SyncError(f"Request failed: {url}: {e}") from e

    if r.status_code >= 400:
        raise SyncError(f"Request failed ({r.status_code} {r.reason_phrase})")

    try:
        return r.json()
    except ValueError as e:
        raise SyncError(f"Invalid JSON from {url}: {e}") from e


def _sync_endpoint(client: httpx.Client, endpoint: Endpoint, out_dir: Path) -> EndpointResult:
    try:
        payload = fetch_json(client, endpoint.url)
        validate_payload_type(endpoint.name, payload, endpoint.expected)
    except SyncError as e:
        logger.error("HACS sync failed for {}: {}", endpoint.name, e)
        return EndpointResult(name=endpoint.name, ok=False, error=str(e))

    out_path = out_dir / endpoint.file
    out_path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
    logger.info("HACS sync saved {} -> {}", endpoint.name, out_path)
    return EndpointResult(name=endpoint.name, ok=True, file=str(out_path))


def sync_hacs_data(
    out_dir: Path = HACS_DATA_DIR,
    timeout_ms: int = HACS_FETCH_TIMEOUT_MS,
    strict: bool = HACS_FETCH_STRICT,
    client: Optional[httpx.Client] = None,
    endpoints: Optional[List[Endpoint]] = None,
) -> SyncSummary:
    """
    Fetch every endpoint and write the results plus ``last-sync.json``.

    Pass ``client`` to reuse a configured ``httpx.Client`` (tests hand in one
    backed by ``httpx.MockTransport``).
    """
    out_dir.mkdir(parents=True, exist_ok=True)
    endpoints = ENDPOINTS if endpoints is None else endpoints

    owns_client = client is None
    if client is None:
        client = httpx.Client(
            follow_redirects=True,
            timeout=httpx.Timeout(timeout_ms / 1000),
        )

    try:
        results = [_sync_endpoint(client, endpoint, out_dir) for endpoint in endpoints]
    finally:
        if owns_client:
            client.close()

    summary = SyncSummary(
        generated_at=datetime.now(timezone.utc).isoformat(),
        strict_mode=strict,
        timeout_ms=timeout_ms,
        results=results,
    )
    summary_path = out_dir / "last-sync.json"
    summary_path.write_text(
        json.dumps(summary.model_dump(mode="json", by_alias=True, exclude_none=True), indent=2) + "\n",
        encoding="utf-8",
    )

    if summary.all_ok:
        logger.info("HACS sync completed successfully.")
    elif strict:
        failed = [r.name for r in summary.results if not r.ok]
        raise SyncError(f"HACS sync failed in strict mode: {', '.join(failed)}")
    else:
        logger.warning("HACS sync completed with failures; keeping existing files where fetch failed.")

    return summary


# ---------- CLI ----------

def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Download upstream HACS integration data.")
    ap.add_argument("--out-dir", type=Path, default=HACS_DATA_DIR)
    ap.add_argument("--timeout-ms", type=int, default=HACS_FETCH_TIMEOUT_MS)
    ap.add_argument("--strict", action="store_true", default=HACS_FETCH_STRICT)
    args = ap.parse_args(argv)

    try:
        sync_hacs_data(out_dir=args.out_dir, timeout_ms=args.timeout_ms, strict=args.strict)
    except SyncError as e:
        logger.error("{}", e)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
