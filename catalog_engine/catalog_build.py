from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import pandas as pd
from loguru import logger
from pydantic import TypeAdapter, ValidationError

from .config import (
    CATALOG_SNAPSHOT_PATH,
    DAY_MS,
    FEATURED_MAX_AGE_DAYS,
    FEATURED_MIN_STARS,
    HACS_DATA_DIR,
    MAX_TOPICS,
    CatalogItem,
    now_ms as current_ms,
)
from .errors import CatalogLoadError
from .score_model import score_catalog


# ---------------------------
# Category derivation
# ---------------------------

# First match wins, so order matters (a "camera power meter" is Security).
CATEGORY_RULES: List[Tuple[str, re.Pattern]] = [
    ("Security", re.compile(r"camera|frigate|cctv|alarm|security|lock|doorbell|motion")),
    ("Energy", re.compile(r"energy|solar|battery|inverter|power|meter|electric")),
    ("Climate", re.compile(r"climate|thermostat|hvac|air|humidifier|fan|temperature|weather")),
    ("Media", re.compile(r"media|music|spotify|sonos|plex|tv|audio|radio")),
    ("Network", re.compile(r"network|router|wifi|bluetooth|mqtt|modbus|api")),
    ("Mobility", re.compile(r"car|vehicle|ev|tesla|transport|navigation")),
    ("Utility", re.compile(r"calendar|waste|schedule|task|todo|notification|mail")),
    ("Dashboard", re.compile(r"dashboard|card|ui|lovelace|frontend|template")),
]

FALLBACK_CATEGORY = "General"
FALLBACK_DESCRIPTION = "No description available."

# days-since-update used for entries without a timestamp
_UNKNOWN_AGE_DAYS = 99_999

CATALOG_COLUMNS = [
    "slug",
    "details_path",
    "name",
    "author",
    "repo",
    "category",
    "domain",
    "stars",
    "featured",
    "recommended_score",
    "score_confidence",
    "url",
    "description",
    "updated_at",
    "updated_ts",
    "open_issues",
    "topics",
]

_items_adapter = TypeAdapter(List[CatalogItem])


def derive_category(domain: Optional[str], topics: Sequence[str], description: Optional[str]) -> str:
    searchable = f"{domain or ''} {' '.join(topics or [])} {description or ''}".lower()
    for category, pattern in CATEGORY_RULES:
        if pattern.search(searchable):
            return category
    return FALLBACK_CATEGORY


def slug_from_repo(full_name: str) -> str:
    """'Owner/Repo' -> 'owner--repo'."""
    return full_name.lower().replace("/", "--", 1)


def _manifest_name(entry: Mapping[str, Any]) -> Optional[str]:
    manifest = entry.get("manifest")
    if isinstance(manifest, dict) and manifest.get("name"):
        return str(manifest["name"])
    if entry.get("manifest_name"):
        return str(entry["manifest_name"])
    return None


def _clean_topics(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(t) for t in value[:MAX_TOPICS]]


def _timestamps_to_ms(values: pd.Series) -> pd.Series:
    """ISO strings -> epoch milliseconds; unparsable or missing -> 0."""
    parsed = pd.to_datetime(values, utc=True, errors="coerce", format="ISO8601")
    epoch = pd.Timestamp(0, tz="UTC")
    millis = (parsed - epoch) // pd.Timedelta(milliseconds=1)
    return millis.fillna(0).astype("int64")


def _non_negative_ints(values: pd.Series) -> pd.Series:
    return pd.to_numeric(values, errors="coerce").fillna(0).clip(lower=0).astype("int64")


# ---------------------------
# Catalog building
# ---------------------------

def _entries_frame(raw_entries: Mapping[str, Any], repositories: Sequence[str]) -> pd.DataFrame:
    listed = set(repositories) if isinstance(repositories, list) else set()

    rows: List[Dict[str, Any]] = []
    for entry in (raw_entries or {}).values():
        if not isinstance(entry, dict):
            continue
        full_name = entry.get("full_name")
        if not isinstance(full_name, str) or full_name not in listed:
            continue

        author, _, repo_name = full_name.partition("/")
        topics = _clean_topics(entry.get("topics"))
        description = entry.get("description") or FALLBACK_DESCRIPTION
        slug = slug_from_repo(full_name)
        rows.append(
            {
                "slug": slug,
                "details_path": f"/integration/{slug}/",
                "name": _manifest_name(entry) or repo_name or full_name,
                "author": author or "unknown",
                "repo": full_name,
                "category": derive_category(entry.get("domain"), topics, entry.get("description")),
                "domain": entry.get("domain") or "n/a",
                "stars_raw": entry.get("stargazers_count"),
                "open_issues_raw": entry.get("open_issues"),
                "url": f"https://github.com/{full_name}",
                "description": description,
                "updated_at": entry.get("last_updated") or None,
                "topics": topics,
            }
        )

    return pd.DataFrame(rows)


def build_catalog(
    raw_entries: Mapping[str, Any],
    repositories: Sequence[str],
    now_ms: Optional[int] = None,
) -> List[CatalogItem]:
    """
    Raw HACS integration data -> scored catalog, best first.

    Only entries whose ``full_name`` is listed in ``repositories`` are kept.
    Popularity percentiles are computed over the kept entries only.
    """
    now_ms = current_ms() if now_ms is None else now_ms
    df = _entries_frame(raw_entries, repositories)
    if df.empty:
        logger.warning("No listed integrations found in raw HACS data; catalog is empty.")
        return []

    logger.info("Building catalog from {} listed integrations", len(df))

    df["stars"] = _non_negative_ints(df["stars_raw"])
    df["open_issues"] = _non_negative_ints(df["open_issues_raw"])
    df["updated_ts"] = _timestamps_to_ms(df["updated_at"])
    df["updated_at"] = df["updated_at"].astype(object).where(df["updated_at"].notna(), None)

    age_days = ((now_ms - df["updated_ts"]) // DAY_MS).where(df["updated_ts"] > 0, _UNKNOWN_AGE_DAYS)
    df["featured"] = (df["stars"] >= FEATURED_MIN_STARS) & (age_days <= FEATURED_MAX_AGE_DAYS)

    scores, confidences = score_catalog(
        df["stars"].tolist(),
        df["updated_ts"].tolist(),
        df["open_issues"].tolist(),
        now_ms,
    )
    df["recommended_score"] = scores
    df["score_confidence"] = confidences

    df = df.sort_values(
        ["recommended_score", "stars"],
        ascending=[False, False],
        kind="mergesort",
    )

    records = df[CATALOG_COLUMNS].to_dict("records")
    items = [CatalogItem(**record) for record in records]
    logger.info(
        "Catalog built: {} items, {} featured",
        len(items),
        sum(1 for item in items if item.featured),
    )
    return items


# ---------------------------
# IO helpers
# ---------------------------

def _load_json(path: Path, fallback: Any) -> Any:
    try:
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        logger.warning("Raw data file missing: {}", path)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Could not read {}: {}", path, e)
    return fallback


def load_raw_hacs(data_dir: Path = HACS_DATA_DIR) -> Tuple[Dict[str, Any], List[str]]:
    """Read the synced HACS documents; missing or corrupt files read as empty."""
    integration_data = _load_json(data_dir / "integration-data.json", {})
    repositories = _load_json(data_dir / "integration-repositories.json", [])
    if not isinstance(integration_data, dict):
        logger.warning("integration-data.json is not an object; ignoring it")
        integration_data = {}
    if not isinstance(repositories, list):
        logger.warning("integration-repositories.json is not an array; ignoring it")
        repositories = []
    return integration_data, repositories


def write_catalog_snapshot(items: Sequence[CatalogItem], output_path: Path = CATALOG_SNAPSHOT_PATH) -> Path:
    logger.info("Writing catalog snapshot to {}", output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    payload = [item.model_dump(mode="json", by_alias=True) for item in items]
    output_path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
    logger.info("Catalog snapshot written with {} rows", len(payload))
    return output_path


def load_catalog_snapshot(path: Path = CATALOG_SNAPSHOT_PATH) -> List[CatalogItem]:
    """
    Load the scored catalog.

    An empty list is a valid catalog. A missing, unreadable or malformed file
    raises :class:`CatalogLoadError`.
    """
    logger.info("Loading catalog snapshot from {}", path)
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise CatalogLoadError(f"Catalog snapshot not found: {path}") from e
    except (OSError, json.JSONDecodeError) as e:
        raise CatalogLoadError(f"Catalog snapshot unreadable: {path}: {e}") from e

    try:
        items = _items_adapter.validate_python(raw)
    except ValidationError as e:
        raise CatalogLoadError(f"Catalog snapshot is malformed: {path}: {e}") from e

    logger.info("Loaded catalog snapshot with {} rows", len(items))
    return items


def build_catalog_snapshot(
    data_dir: Path = HACS_DATA_DIR,
    output_path: Path = CATALOG_SNAPSHOT_PATH,
    now_ms: Optional[int] = None,
) -> Path:
    """
    End-to-end: raw HACS JSON -> scored catalog -> JSON snapshot.

    Returns the output path.
    """
    integration_data, repositories = load_raw_hacs(data_dir)
    items = build_catalog(integration_data, repositories, now_ms=now_ms)
    return write_catalog_snapshot(items, output_path)


# ---------------------------
# CLI entrypoint
# ---------------------------

if __name__ == "__main__":
    # python -m catalog_engine.catalog_build
    build_catalog_snapshot()
