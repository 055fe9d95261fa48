import pytest

from donation_carbon.factors import (
    NO_FACTOR,
    FactorSource,
    WeightState,
    convert_for_factor,
    parse_weight_state,
    resolve_factor,
)
from donation_carbon.snapshot import MappingRow, ReferenceFoodRow


def mapping(override=None):
    return MappingRow("PORKKANA", "cooked", reference_food_id=1, co2_override_per_kg=override)


def test_override_wins():
    food = ReferenceFoodRow(1, kg_co2e_per_kg=3.0, g_co2e_per_100g=900)

    f = resolve_factor(mapping(override=0.7), food)

    assert f.value == 0.7
    assert f.source == FactorSource.OVERRIDE


def test_zero_override_is_a_factor():
    f = resolve_factor(mapping(override=0.0), None)

    assert f.found
    assert f.value == 0.0


def test_kg_factor_before_per_100g():
    f = resolve_factor(mapping(), ReferenceFoodRow(1, kg_co2e_per_kg=3.0, g_co2e_per_100g=900))

    assert f.value == 3.0
    assert f.source == FactorSource.REFERENCE_KG


def test_per_100g_is_converted():
    f = resolve_factor(mapping(), ReferenceFoodRow(1, g_co2e_per_100g=250))

    assert f.value == pytest.approx(2.5)
    assert f.source == FactorSource.REFERENCE_100G


def test_no_factor():
    assert resolve_factor(mapping(), None) is NO_FACTOR
    assert resolve_factor(None, None) is NO_FACTOR
    assert not resolve_factor(mapping(), ReferenceFoodRow(1)).found


def test_parse_weight_state():
    assert parse_weight_state(None) == WeightState.IGNORE
    assert parse_weight_state("  ") == WeightState.IGNORE
    assert parse_weight_state(" Raw ") == WeightState.RAW
    assert parse_weight_state("cooked") == WeightState.COOKED
    assert parse_weight_state("boiled") is None


def test_convert_cooked_is_identity():
    assert convert_for_factor(1.25, WeightState.COOKED) == 1.25


def test_convert_raw_divides_by_yield():
    assert convert_for_factor(1.0, WeightState.RAW, 0.5) == pytest.approx(2.0)


@pytest.mark.parametrize("y", [None, 0, -1, "n/a"])
def test_convert_raw_without_usable_yield(y):
    assert convert_for_factor(1.0, WeightState.RAW, y) is None


def test_convert_ignore_is_a_caller_error():
    with pytest.raises(ValueError):
        convert_for_factor(1.0, WeightState.IGNORE)
