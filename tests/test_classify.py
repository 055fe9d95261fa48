import pytest

from donation_carbon.classify import (
    LeafStatus,
    Reason,
    classify_component_fallback,
    classify_ingredient,
    core_from_name,
)
from donation_carbon.config import AllocationPolicy
from donation_carbon.factors import FactorSource
from donation_carbon.snapshot import (
    ComponentRow,
    DonationRow,
    DonationSnapshot,
    IngredientRow,
    MappingRow,
    ReferenceFoodRow,
)

POLICY = AllocationPolicy()
COMPONENT = ComponentRow(id=1, dish_id=1, name_raw="Broilerikastike")


def snapshot(mappings=(), foods=()):
    return DonationSnapshot(
        donation=DonationRow(id=1, donated_weight_kg=2.0, component_id=1),
        source_system="SODEXO",
        components=[COMPONENT],
        mappings={m.ingredient_core: m for m in mappings},
        foods={f.food_id: f for f in foods},
    )


def classify(snap, ingredient, share_frac, component_mass_kg=2.0):
    return classify_ingredient(snap, COMPONENT, component_mass_kg, ingredient, share_frac, POLICY)


@pytest.mark.parametrize(
    "name, core",
    [
        ("Keitetty riisi 2,5 kg", "KEITETTY_RIISI"),
        ("Broileri-kastike RTU", "BROILERI_KASTIKE"),
        ("Härkä ja sieni", "HARKA_JA_SIENI"),
        ("  ", "UNKNOWN"),
        (None, "UNKNOWN"),
    ],
)
def test_core_from_name(name, core):
    assert core_from_name(name) == core


def test_water_is_ignored_even_with_a_mapping():
    snap = snapshot(mappings=[MappingRow("VESI", "cooked", co2_override_per_kg=0.1)])
    leaf = classify(snap, IngredientRow(1, "VESI", 40, is_water=True), 0.4)

    assert leaf.status == LeafStatus.IGNORED
    assert leaf.reason == Reason.EXCLUDED_SUBSTANCE
    assert leaf.cooked_mass_kg == pytest.approx(0.8)
    assert leaf.co2e_kg == 0.0


def test_salt_is_ignored():
    leaf = classify(snapshot(), IngredientRow(1, "SUOLA", 12, is_salt=True), 0.12)

    assert leaf.status == LeafStatus.IGNORED
    assert leaf.reason == Reason.EXCLUDED_SUBSTANCE


def test_below_threshold_is_ignored_even_when_mapped():
    snap = snapshot(
        mappings=[MappingRow("PIPPURI", "cooked", reference_food_id=5)],
        foods=[ReferenceFoodRow(5, kg_co2e_per_kg=4.0)],
    )
    leaf = classify(snap, IngredientRow(1, "PIPPURI", 5), 0.05)

    assert leaf.status == LeafStatus.IGNORED
    assert leaf.reason == Reason.BELOW_THRESHOLD
    assert leaf.co2e_kg == 0.0


def test_exactly_at_threshold_is_significant():
    leaf = classify(snapshot(), IngredientRow(1, "SIPULI", 10), 0.10)

    assert leaf.status == LeafStatus.UNMAPPED
    assert leaf.reason == Reason.NO_MAPPING


def test_missing_share_carries_no_mass():
    leaf = classify(snapshot(), IngredientRow(1, "KERMA"), None)

    assert leaf.status == LeafStatus.UNMAPPED
    assert leaf.reason == Reason.MISSING_SHARE
    assert leaf.cooked_mass_kg == 0.0
    assert leaf.share_pct is None


def test_mapping_marks_ignore():
    snap = snapshot(mappings=[MappingRow("LIEMI", "ignore")])
    leaf = classify(snap, IngredientRow(1, "LIEMI", 30), 0.3)

    assert leaf.status == LeafStatus.IGNORED
    assert leaf.reason == Reason.MAPPING_IGNORE


def test_unknown_weight_state_is_unmapped():
    snap = snapshot(mappings=[MappingRow("RIISI", "boiled", co2_override_per_kg=1.0)])
    leaf = classify(snap, IngredientRow(1, "RIISI", 50), 0.5)

    assert leaf.status == LeafStatus.UNMAPPED
    assert leaf.reason == Reason.UNKNOWN_WEIGHT_STATE


def test_mapping_without_factor():
    snap = snapshot(mappings=[MappingRow("KANA", "cooked", reference_food_id=99)])
    leaf = classify(snap, IngredientRow(1, "KANA", 50), 0.5)

    assert leaf.status == LeafStatus.UNMAPPED
    assert leaf.reason == Reason.NO_FACTOR
    assert leaf.reference_food_id == 99


def test_raw_without_yield_is_unmapped_not_cooked():
    snap = snapshot(
        mappings=[MappingRow("KANA", "raw", reference_food_id=5)],
        foods=[ReferenceFoodRow(5, kg_co2e_per_kg=2.0)],
    )
    leaf = classify(snap, IngredientRow(1, "KANA", 50), 0.5)

    assert leaf.status == LeafStatus.UNMAPPED
    assert leaf.reason == Reason.RAW_CONVERSION_UNAVAILABLE
    assert leaf.factor_kg_per_kg == 2.0
    assert leaf.co2e_kg == 0.0


def test_raw_conversion_uses_yield():
    snap = snapshot(
        mappings=[MappingRow("KANA", "raw", reference_food_id=5, yield_cooked_per_raw=0.5)],
        foods=[ReferenceFoodRow(5, kg_co2e_per_kg=2.0, name_en="Chicken, raw")],
    )
    leaf = classify(snap, IngredientRow(1, "KANA", 50, base_name="kana"), 0.5)

    assert leaf.status == LeafStatus.MAPPED
    assert leaf.reason == Reason.OK
    assert leaf.cooked_mass_kg == pytest.approx(1.0)
    assert leaf.mass_for_factor_kg == pytest.approx(2.0)
    assert leaf.co2e_kg == pytest.approx(4.0)
    assert leaf.factor_source == FactorSource.REFERENCE_KG
    assert leaf.reference_food_name == "Chicken, raw"
    assert leaf.label == "kana"
    assert leaf.share_pct == pytest.approx(50.0)


def test_label_falls_back_to_core():
    leaf = classify(snapshot(), IngredientRow(1, "SIPULI", 20, base_name="  "), 0.2)

    assert leaf.label == "SIPULI"


def test_component_fallback_maps_by_name():
    snap = snapshot(mappings=[MappingRow("BROILERIKASTIKE", "cooked", co2_override_per_kg=3.0)])
    leaf = classify_component_fallback(snap, COMPONENT, 2.0)

    assert leaf.status == LeafStatus.MAPPED
    assert leaf.reason == Reason.COMPONENT_FALLBACK_OK
    assert leaf.ingredient_core == "BROILERIKASTIKE"
    assert leaf.co2e_kg == pytest.approx(6.0)
    assert leaf.factor_source == FactorSource.OVERRIDE


def test_component_fallback_ignore_mapping_stays_unmapped():
    snap = snapshot(mappings=[MappingRow("BROILERIKASTIKE", "ignore")])
    leaf = classify_component_fallback(snap, COMPONENT, 2.0)

    assert leaf.status == LeafStatus.UNMAPPED
    assert leaf.reason == Reason.MAPPING_IGNORE
    assert leaf.cooked_mass_kg == 2.0


def test_component_fallback_without_mapping():
    leaf = classify_component_fallback(snapshot(), COMPONENT, 2.0)

    assert leaf.status == LeafStatus.UNMAPPED
    assert leaf.reason == Reason.NO_MAPPING
    assert leaf.cooked_mass_kg == 2.0
