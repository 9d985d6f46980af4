import json

import pytest

from catalog_engine.catalog_build import (
    FALLBACK_DESCRIPTION,
    build_catalog,
    build_catalog_snapshot,
    derive_category,
    load_catalog_snapshot,
    load_raw_hacs,
    slug_from_repo,
    write_catalog_snapshot,
)
from catalog_engine.errors import CatalogLoadError

from catalog_fixtures import NOW_MS

RAW = {
    "101": {
        "full_name": "Owner/Solar-Bridge",
        "domain": "solar_bridge",
        "description": "Solar inverter bridge",
        "stargazers_count": 1500,
        "open_issues": 4,
        "last_updated": "2026-02-10T00:00:00Z",
        "topics": ["solar", "inverter", "a", "b", "c", "d", "e"],
        "manifest": {"name": "Solar Bridge"},
    },
    "102": {
        "full_name": "Other/Door-Cam",
        "stargazers_count": 50,
        "open_issues": 12,
        "last_updated": "2024-01-01T00:00:00Z",
        "description": "Doorbell camera events",
        "manifest_name": "Door Cam",
    },
    "103": {
        "full_name": "Quiet/No-Date",
        "stargazers_count": 900,
    },
    "104": {"full_name": "ghost/unlisted", "stargazers_count": 99999},
    "105": "not a dict",
    "106": {"full_name": 123},
}
REPOSITORIES = ["Owner/Solar-Bridge", "Other/Door-Cam", "Quiet/No-Date"]


def test_derive_category_first_rule_wins():
    assert derive_category("frigate", ["power"], None) == "Security"
    assert derive_category(None, ["solar"], "") == "Energy"
    assert derive_category("dashboard", [], "lovelace ui") == "Dashboard"
    # substring rules: "card" contains "car"
    assert derive_category(None, [], "custom card") == "Mobility"
    assert derive_category(None, [], None) == "General"


def test_slug_from_repo():
    assert slug_from_repo("Owner/My-Repo") == "owner--my-repo"
    assert slug_from_repo("a/b/c") == "a--b/c"


def test_build_catalog_keeps_listed_entries_only():
    items = build_catalog(RAW, REPOSITORIES, now_ms=NOW_MS)
    assert {i.repo for i in items} == set(REPOSITORIES)


def test_build_catalog_derives_fields():
    items = {i.repo: i for i in build_catalog(RAW, REPOSITORIES, now_ms=NOW_MS)}

    solar = items["Owner/Solar-Bridge"]
    assert solar.slug == "owner--solar-bridge"
    assert solar.details_path == "/integration/owner--solar-bridge/"
    assert solar.name == "Solar Bridge"
    assert solar.author == "Owner"
    assert solar.category == "Energy"
    assert solar.featured is True
    assert len(solar.topics) == 6
    assert solar.url == "https://github.com/Owner/Solar-Bridge"

    cam = items["Other/Door-Cam"]
    assert cam.name == "Door Cam"
    assert cam.category == "Security"
    assert cam.featured is False
    assert cam.domain == "n/a"

    quiet = items["Quiet/No-Date"]
    assert quiet.name == "No-Date"
    assert quiet.updated_ts == 0
    assert quiet.updated_at is None
    # popular but never updated: not featured
    assert quiet.featured is False
    assert quiet.description == FALLBACK_DESCRIPTION


def test_build_catalog_sorted_best_first():
    items = build_catalog(RAW, REPOSITORIES, now_ms=NOW_MS)
    scores = [i.recommended_score for i in items]
    assert scores == sorted(scores, reverse=True)
    assert items[0].repo == "Owner/Solar-Bridge"
    assert all(0 <= i.score_confidence <= 100 for i in items)


def test_build_catalog_empty_input():
    assert build_catalog({}, [], now_ms=NOW_MS) == []
    assert build_catalog(RAW, "not a list", now_ms=NOW_MS) == []


def test_snapshot_round_trip(tmp_path):
    items = build_catalog(RAW, REPOSITORIES, now_ms=NOW_MS)
    path = write_catalog_snapshot(items, tmp_path / "out" / "catalog.json")

    on_disk = json.loads(path.read_text(encoding="utf-8"))
    assert "recommendedScore" in on_disk[0]
    assert "updatedTs" in on_disk[0]

    assert load_catalog_snapshot(path) == items


def test_snapshot_without_confidence_uses_score(tmp_path):
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps([{"slug": "x", "name": "X", "recommendedScore": 71.5}]), encoding="utf-8")
    (item,) = load_catalog_snapshot(path)
    assert item.score_confidence == 71.5


@pytest.mark.parametrize(
    "content",
    [None, "{not json", json.dumps([{"name": "no slug"}]), json.dumps({"slug": "x"})],
)
def test_bad_snapshot_raises(tmp_path, content):
    path = tmp_path / "catalog.json"
    if content is not None:
        path.write_text(content, encoding="utf-8")
    with pytest.raises(CatalogLoadError):
        load_catalog_snapshot(path)


def test_empty_snapshot_is_valid(tmp_path):
    path = tmp_path / "catalog.json"
    path.write_text("[]", encoding="utf-8")
    assert load_catalog_snapshot(path) == []


def test_load_raw_hacs_tolerates_missing_and_corrupt(tmp_path):
    assert load_raw_hacs(tmp_path) == ({}, [])
    (tmp_path / "integration-data.json").write_text("[1, 2]", encoding="utf-8")
    (tmp_path / "integration-repositories.json").write_text("oops", encoding="utf-8")
    assert load_raw_hacs(tmp_path) == ({}, [])


def test_build_catalog_snapshot_end_to_end(tmp_path):
    data_dir = tmp_path / "hacs"
    data_dir.mkdir()
    (data_dir / "integration-data.json").write_text(json.dumps(RAW), encoding="utf-8")
    (data_dir / "integration-repositories.json").write_text(json.dumps(REPOSITORIES), encoding="utf-8")

    out = build_catalog_snapshot(data_dir, tmp_path / "catalog.json", now_ms=NOW_MS)
    items = load_catalog_snapshot(out)
    assert len(items) == 3
