import pytest

from catalog_engine.config import DAY_MS

from catalog_fixtures import NOW_MS, make_item


@pytest.fixture
def catalog_items():
    return [
        make_item(
            "alpha",
            name="Alpha Solar",
            category="Energy",
            stars=1200,
            featured=True,
            recommended_score=88.0,
            score_confidence=80.0,
            description="Solar inverter bridge",
            topics=["solar", "energy"],
        ),
        make_item(
            "beta",
            name="Beta Cam",
            category="Security",
            stars=300,
            recommended_score=61.5,
            score_confidence=55.0,
            updated_ts=NOW_MS - 120 * DAY_MS,
            description="Camera motion events",
        ),
        make_item(
            "gamma",
            name="gamma Tunes",
            category="Media",
            stars=40,
            recommended_score=42.0,
            updated_ts=0,
            description="Music player",
        ),
        make_item(
            "delta",
            name="Delta Meter",
            category="Energy",
            stars=300,
            recommended_score=70.2,
            score_confidence=68.0,
            description="Power meter over modbus",
        ),
    ]
