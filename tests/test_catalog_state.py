import pytest

from catalog_engine.catalog_state import (
    CatalogState,
    EmptyStateAction,
    SortKey,
    active_filter_chips,
    apply_empty_state_action,
    apply_preset,
    clear_filter,
    coerce_bucket,
    default_state,
    deserialize_state,
    empty_state_recovery_actions,
    nearest_bucket,
    serialize_state,
)
from catalog_engine.config import CONFIDENCE_BUCKETS, STARS_BUCKETS, UPDATED_BUCKETS

CATEGORIES = ["Energy", "Security", "Media"]


def test_default_state_serializes_to_empty_query():
    assert serialize_state(default_state()) == ""
    assert deserialize_state("", CATEGORIES) == default_state()


def test_round_trip_restores_state():
    state = CatalogState(
        q="solar panel",
        category="Energy",
        stars=1000,
        updated=30,
        confidence=65,
        sort=SortKey.STARS_DESC,
        featured=True,
    )
    query = serialize_state(state)
    assert deserialize_state(query, CATEGORIES) == state
    assert deserialize_state("?" + query, CATEGORIES) == state


def test_serialization_order_is_fixed():
    state = CatalogState(featured=True, q="x", stars=100)
    assert serialize_state(state) == "q=x&stars=100&featured=1"


@pytest.mark.parametrize(
    "query, field, expected",
    [
        ("stars=999999", "stars", 2500),
        ("stars=abc", "stars", 0),
        ("stars=-40", "stars", 0),
        ("stars=Infinity", "stars", 0),
        ("stars=600", "stars", 500),
        ("updated=60", "updated", 30),
        ("updated=40", "updated", 30),
        ("updated=9999", "updated", 365),
        ("confidence=66", "confidence", 65),
        ("confidence=999", "confidence", 85),
    ],
)
def test_garbage_query_values_are_bucketed(query, field, expected):
    assert getattr(deserialize_state(query, CATEGORIES), field) == expected


def test_unknown_category_and_sort_fall_back():
    state = deserialize_state("category=Nope&sort=random&featured=yes", CATEGORIES)
    assert state.category == "all"
    assert state.sort is SortKey.RECOMMENDED_DESC
    assert state.featured is False


def test_nearest_bucket_prefers_lower_on_tie():
    assert nearest_bucket(60, UPDATED_BUCKETS) == 30
    assert nearest_bucket(61, UPDATED_BUCKETS) == 90


def test_state_never_holds_off_bucket_values():
    state = CatalogState(stars=333, updated=2, confidence=80)
    assert state.stars in STARS_BUCKETS
    assert state.updated in UPDATED_BUCKETS
    assert state.confidence in CONFIDENCE_BUCKETS
    assert coerce_bucket(None, STARS_BUCKETS) == 0


def test_query_is_trimmed():
    assert CatalogState(q="  camera  ").q == "camera"


def test_presets_start_from_default():
    busy = CatalogState(q="x", category="Media", featured=True)
    popular = apply_preset("popular", busy)
    assert popular == CatalogState(stars=1000, sort=SortKey.STARS_DESC)
    assert apply_preset("recent").updated == 30
    assert apply_preset("reliable").confidence == 75
    assert apply_preset("does-not-exist", busy) == default_state()


def test_chips_follow_non_default_fields():
    state = CatalogState(q="mqtt", stars=1000, sort=SortKey.NAME_ASC, featured=True)
    chips = active_filter_chips(state)
    assert [c.key for c in chips] == ["q", "stars", "sort", "featured"]
    assert chips[0].label == 'Search: "mqtt"'
    assert chips[1].label == "1,000+ stars"
    assert chips[2].label == "Sort: Name A-Z"
    assert chips[3].label == "Featured only"
    assert active_filter_chips(default_state()) == []


def test_clear_filter_resets_one_field():
    state = CatalogState(q="mqtt", stars=1000)
    cleared = clear_filter(state, "stars")
    assert cleared.stars == 0
    assert cleared.q == "mqtt"
    assert clear_filter(state, "bogus") is state


def test_empty_state_actions_narrowest_first():
    state = CatalogState(updated=7, confidence=85, featured=True)
    assert empty_state_recovery_actions(state) == [
        EmptyStateAction.CLEAR_UPDATED,
        EmptyStateAction.LOWER_CONFIDENCE,
        EmptyStateAction.DISABLE_FEATURED,
    ]
    assert empty_state_recovery_actions(CatalogState(q="zzz")) == [EmptyStateAction.RESET_ALL]


def test_apply_empty_state_actions():
    state = CatalogState(q="x", updated=7, confidence=85, featured=True)
    assert apply_empty_state_action(state, "clear-updated").updated == 0
    assert apply_empty_state_action(state, EmptyStateAction.LOWER_CONFIDENCE).confidence == 75
    assert apply_empty_state_action(state, "disable-featured").featured is False
    assert apply_empty_state_action(state, "reset-all") == default_state()
    assert apply_empty_state_action(state, "explode") is state
