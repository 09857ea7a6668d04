import pytest

from swingfit.catalog import load_catalog
from swingfit.models import ClubHead, EquipmentCatalog, Shaft, SwingFeatures
from swingfit.ranker import rank


@pytest.fixture(scope="module")
def catalog():
    return load_catalog()


def create_features(max_acceleration=0.0, smoothness=0.0):
    return SwingFeatures(
        max_acceleration=max_acceleration,
        max_rotation_rate=10.0,
        swing_duration=1.5,
        tempo=20.0,
        smoothness=smoothness,
        sample_count=30
    )


def test_all_rules_fire(catalog):
    recs = rank(create_features(max_acceleration=20, smoothness=80), catalog)

    # power 90, control 92, balanced min(88, 100) = 88
    assert [rec.style for rec in recs] == ["control", "power", "balanced"]
    assert [rec.match_percentage for rec in recs] == [92.0, 90.0, 88.0]


def test_sorted_by_match_descending(catalog):
    recs = rank(create_features(max_acceleration=16, smoothness=70), catalog)

    # power 86, control 92, balanced min(88, 93) = 88
    assert [rec.style for rec in recs] == ["control", "balanced", "power"]
    assert [rec.match_percentage for rec in recs] == [92.0, 88.0, 86.0]


def test_only_balanced_when_thresholds_unmet(catalog):
    recs = rank(create_features(max_acceleration=5, smoothness=40), catalog)

    assert len(recs) == 1
    assert recs[0].style == "balanced"
    assert recs[0].flex == "R"
    assert recs[0].match_percentage == pytest.approx(72.5)


def test_scores_are_capped(catalog):
    recs = rank(create_features(max_acceleration=500, smoothness=100), catalog)
    scores = {rec.style: rec.match_percentage for rec in recs}

    assert scores == {'power': 95.0, 'control': 92.0, 'balanced': 88.0}


def test_ties_keep_emission_order(catalog):
    # power min(95, 92) = 92 ties with control min(92, 152) = 92
    recs = rank(create_features(max_acceleration=22, smoothness=92), catalog)

    assert [rec.style for rec in recs] == ["power", "control", "balanced"]
    assert recs[0].match_percentage == recs[1].match_percentage


def test_flex_selection(catalog):
    control = rank(create_features(max_acceleration=13, smoothness=80), catalog)
    by_style = {rec.style: rec for rec in control}

    assert by_style['control'].flex == "S"
    assert by_style['balanced'].flex == "R"

    balanced = rank(create_features(max_acceleration=14.5, smoothness=10), catalog)
    assert balanced[0].flex == "S"


def test_power_pairs_low_spin_head_with_stiff_shaft(catalog):
    recs = rank(create_features(max_acceleration=20, smoothness=10), catalog)
    power = next(rec for rec in recs if rec.style == "power")

    assert "low_spin" in power.head.characteristics
    assert power.shaft.flex == "S"
    assert power.flex == "S"


def test_ids_follow_emission_order(catalog):
    recs = rank(create_features(max_acceleration=16, smoothness=70), catalog)
    by_style = {rec.style: rec.id for rec in recs}

    assert by_style == {'power': 1, 'control': 2, 'balanced': 3}


def test_top_n_truncates(catalog):
    recs = rank(create_features(max_acceleration=20, smoothness=80), catalog, top_n=2)
    assert len(recs) == 2
    assert len(rank(create_features(max_acceleration=20, smoothness=80), catalog, top_n=10)) == 3


def test_empty_catalog_returns_empty_list():
    assert rank(create_features(max_acceleration=20, smoothness=80), EquipmentCatalog()) == []


def test_falls_back_to_first_entries():
    head = ClubHead(id="h", name="Head", brand="B", type="driver", loft=10.0,
                    characteristics=(), price=1000)
    shaft = Shaft(id="s", name="Shaft", brand="B", flex="L", weight=50, torque=4.0,
                  kick_point="high", characteristics=(), price=1000)
    recs = rank(create_features(max_acceleration=20, smoothness=80), EquipmentCatalog((head,), (shaft,)))

    assert len(recs) == 3
    assert all(rec.head is head and rec.shaft is shaft for rec in recs)
    # The requested flex is reported even though the only shaft is L-flex
    assert [rec.flex for rec in recs] == ["S", "S", "S"]
    assert all(rec.shaft.flex == "L" for rec in recs)


def test_ranking_is_deterministic(catalog):
    features = create_features(max_acceleration=17, smoothness=75)
    assert rank(features, catalog) == rank(features, catalog)


if __name__ == "__main__":
    pytest.main([__file__])
