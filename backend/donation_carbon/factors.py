# donation_carbon/factors.py
# ---------------------------------------------------------
# Emission factor resolution + weight-state conversion.
#
# Resolution priority (first match wins):
#   1) mapping.co2_override_per_kg
#   2) reference_food.kg_co2e_per_kg
#   3) reference_food.g_co2e_per_100g * 0.01   (g/100g == 0.01 kg/kg)
#   4) no factor
#
# Weight states:
#   cooked -> factor applies to the cooked (donated) mass
#   raw    -> factor applies to cooked_mass / yield_cooked_per_raw
#   ignore -> mass excluded from emissions (handled by the classifier)
# ---------------------------------------------------------

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from donation_carbon.shares import to_number
from donation_carbon.snapshot import MappingRow, ReferenceFoodRow

G_PER_100G_TO_KG_PER_KG = 0.01


class FactorSource(str, Enum):
    OVERRIDE = "override"
    REFERENCE_KG = "reference_kg"
    REFERENCE_100G = "reference_100g"
    NONE = "none"


class WeightState(str, Enum):
    IGNORE = "ignore"
    COOKED = "cooked"
    RAW = "raw"


@dataclass(frozen=True)
class ResolvedFactor:
    value: Optional[float]  # kg CO2e per kg, None = no factor
    source: FactorSource

    @property
    def found(self) -> bool:
        return self.value is not None


NO_FACTOR = ResolvedFactor(None, FactorSource.NONE)


def resolve_factor(
    mapping: Optional[MappingRow],
    food: Optional[ReferenceFoodRow],
) -> ResolvedFactor:
    override = to_number(mapping.co2_override_per_kg) if mapping else None
    if override is not None:
        return ResolvedFactor(override, FactorSource.OVERRIDE)

    if food is None:
        return NO_FACTOR

    per_kg = to_number(food.kg_co2e_per_kg)
    if per_kg is not None:
        return ResolvedFactor(per_kg, FactorSource.REFERENCE_KG)

    per_100g = to_number(food.g_co2e_per_100g)
    if per_100g is not None:
        return ResolvedFactor(per_100g * G_PER_100G_TO_KG_PER_KG, FactorSource.REFERENCE_100G)

    return NO_FACTOR


def parse_weight_state(value: Optional[str]) -> Optional[WeightState]:
    """
    Missing -> IGNORE (the column default for fresh mappings).
    Unrecognised text -> None, which callers treat as unusable.
    """
    if value is None or not str(value).strip():
        return WeightState.IGNORE
    try:
        return WeightState(str(value).strip().lower())
    except ValueError:
        return None


def convert_for_factor(
    cooked_mass_kg: float,
    weight_state: WeightState,
    yield_cooked_per_raw=None,
) -> Optional[float]:
    """
    Mass the emission factor should be multiplied with.

    Returns None when a raw-state mapping has no usable yield:
    the caller must report the mass as unmapped, not as cooked.
    """
    if weight_state == WeightState.COOKED:
        return cooked_mass_kg

    if weight_state == WeightState.RAW:
        y = to_number(yield_cooked_per_raw)
        if y is None or y <= 0:
            return None
        return cooked_mass_kg / y

    raise ValueError(f"weight_state={weight_state.value} has no factor mass")
