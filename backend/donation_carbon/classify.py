# donation_carbon/classify.py
# ---------------------------------------------------------
# Leaf classification.
#
# A "leaf" is one mass fragment of a donation: an ingredient
# of a component, a whole component without a breakdown, or an
# unallocated remainder. Every leaf gets exactly one status:
#
#   mapped   -> has a CO2 factor, contributes co2e
#   unmapped -> we could not resolve it (reason says why)
#   ignored  -> deliberately excluded (water, salt, traces, ...)
# ---------------------------------------------------------

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from donation_carbon.config import AllocationPolicy
from donation_carbon.factors import (
    FactorSource,
    ResolvedFactor,
    WeightState,
    convert_for_factor,
    parse_weight_state,
    resolve_factor,
)
from donation_carbon.snapshot import ComponentRow, DonationSnapshot, IngredientRow


class LeafStatus(str, Enum):
    MAPPED = "mapped"
    UNMAPPED = "unmapped"
    IGNORED = "ignored"


class Reason:
    OK = "ok"
    COMPONENT_FALLBACK_OK = "component-level fallback (no ingredient breakdown)"
    MISSING_SHARE = "missing share"
    EXCLUDED_SUBSTANCE = "excluded substance"
    BELOW_THRESHOLD = "below significance threshold"
    NO_MAPPING = "no mapping"
    MAPPING_IGNORE = "mapping marks ignore"
    UNKNOWN_WEIGHT_STATE = "unknown weight state"
    NO_FACTOR = "no factor"
    RAW_CONVERSION_UNAVAILABLE = "raw conversion unavailable"
    UNALLOCATED_REMAINDER = "unallocated remainder"
    NO_COMPONENTS = "dish has no components"


# Reasons that mean "we don't know how the mass splits",
# as opposed to "we know the split but lack a mapping/factor".
MISSING_SHARE_REASONS = frozenset({
    Reason.MISSING_SHARE,
    Reason.UNALLOCATED_REMAINDER,
    Reason.NO_COMPONENTS,
})

UNALLOCATED_CORE = "UNALLOCATED_REMAINDER"
NO_COMPONENTS_CORE = "NO_COMPONENTS"
UNKNOWN_CORE = "UNKNOWN"


@dataclass(frozen=True)
class Leaf:
    status: LeafStatus
    reason: str
    component_id: Optional[int]
    component_name: str
    ingredient_core: str
    label: str
    share_pct: Optional[float]          # normalized share of the component, 0..100
    cooked_mass_kg: float               # donated (cooked) mass of this fragment
    component_mass_kg: float = 0.0
    reference_food_id: Optional[int] = None
    reference_food_name: Optional[str] = None
    factor_kg_per_kg: Optional[float] = None
    factor_source: FactorSource = FactorSource.NONE
    mass_for_factor_kg: float = 0.0     # raw-equivalent mass when weight_state=raw
    co2e_kg: float = 0.0


# ---------------------------------------------------------
# Component name -> mapping core
# ---------------------------------------------------------
# Same normalization the menu importer applies to ingredient
# tokens, so a component named "Keitetty riisi 2,5 kg" looks
# up the same mapping as the ingredient core KEITETTY_RIISI.
# ---------------------------------------------------------

_QUANTITY_UNIT_RE = re.compile(r"\b\d+[.,]?\d*\s*(KG|G|L|DL|CL|ML)\b")
_NUMBER_RE = re.compile(r"\b\d+[.,]?\d*\b")
_PACKAGING_RE = re.compile(r"\b(RTU|KPA|LTN|TANKO)\b")
_NON_ALNUM_RE = re.compile(r"[^A-Z0-9]+")
_MULTI_UNDERSCORE_RE = re.compile(r"_+")


def core_from_name(name: Optional[str]) -> str:
    s = (name or "").strip().upper()
    s = s.replace("Ä", "A").replace("Ö", "O").replace("Å", "A")
    s = _QUANTITY_UNIT_RE.sub(" ", s)
    s = _NUMBER_RE.sub(" ", s)
    s = _PACKAGING_RE.sub(" ", s)
    s = _NON_ALNUM_RE.sub("_", s)
    s = _MULTI_UNDERSCORE_RE.sub("_", s).strip("_")
    return s or UNKNOWN_CORE


def component_display_name(component: ComponentRow) -> str:
    return (component.name_raw or "").strip() or f"component#{component.id}"


# ---------------------------------------------------------
# Steps 5-9: mapping -> weight state -> factor -> conversion
# ---------------------------------------------------------

def _resolve_mass(
    snapshot: DonationSnapshot,
    base: dict,
    core: str,
    cooked_mass_kg: float,
    *,
    ok_reason: str,
    fallback: bool,
) -> Leaf:
    mapping = snapshot.mappings.get(core)
    if mapping is None:
        return Leaf(status=LeafStatus.UNMAPPED, reason=Reason.NO_MAPPING, **base)

    food = snapshot.food_for(mapping)
    base = dict(
        base,
        reference_food_id=mapping.reference_food_id,
        reference_food_name=(food.name_en or food.name_fi) if food else None,
    )

    state = parse_weight_state(mapping.weight_state)
    if state is None:
        return Leaf(status=LeafStatus.UNMAPPED, reason=Reason.UNKNOWN_WEIGHT_STATE, **base)

    if state == WeightState.IGNORE:
        # A whole component is never "insignificant": without a breakdown
        # an ignore mapping still leaves its mass unaccounted for.
        status = LeafStatus.UNMAPPED if fallback else LeafStatus.IGNORED
        return Leaf(status=status, reason=Reason.MAPPING_IGNORE, **base)

    factor: ResolvedFactor = resolve_factor(mapping, food)
    if not factor.found:
        return Leaf(status=LeafStatus.UNMAPPED, reason=Reason.NO_FACTOR, **base)

    base = dict(base, factor_kg_per_kg=factor.value, factor_source=factor.source)

    mass_for_factor = convert_for_factor(cooked_mass_kg, state, mapping.yield_cooked_per_raw)
    if mass_for_factor is None:
        return Leaf(status=LeafStatus.UNMAPPED, reason=Reason.RAW_CONVERSION_UNAVAILABLE, **base)

    return Leaf(
        status=LeafStatus.MAPPED,
        reason=ok_reason,
        mass_for_factor_kg=mass_for_factor,
        co2e_kg=mass_for_factor * factor.value,
        **base,
    )


def classify_ingredient(
    snapshot: DonationSnapshot,
    component: ComponentRow,
    component_mass_kg: float,
    ingredient: IngredientRow,
    share_frac: Optional[float],
    policy: AllocationPolicy,
) -> Leaf:
    """
    Classify one ingredient of a component.

    share_frac is the NORMALIZED fraction of the component (0..1),
    or None when the ingredient never had a share.
    """
    base = dict(
        component_id=component.id,
        component_name=component_display_name(component),
        component_mass_kg=component_mass_kg,
        ingredient_core=ingredient.ingredient_core,
        label=ingredient.label,
    )

    if share_frac is None:
        # Mass for this one is carried by the component's remainder leaf
        return Leaf(
            status=LeafStatus.UNMAPPED,
            reason=Reason.MISSING_SHARE,
            share_pct=None,
            cooked_mass_kg=0.0,
            **base,
        )

    cooked_mass_kg = component_mass_kg * share_frac
    base.update(share_pct=share_frac * 100.0, cooked_mass_kg=cooked_mass_kg)

    if ingredient.is_water or ingredient.is_salt:
        return Leaf(status=LeafStatus.IGNORED, reason=Reason.EXCLUDED_SUBSTANCE, **base)

    if share_frac < policy.min_share_frac:
        return Leaf(status=LeafStatus.IGNORED, reason=Reason.BELOW_THRESHOLD, **base)

    return _resolve_mass(
        snapshot,
        base,
        ingredient.ingredient_core,
        cooked_mass_kg,
        ok_reason=Reason.OK,
        fallback=False,
    )


def classify_component_fallback(
    snapshot: DonationSnapshot,
    component: ComponentRow,
    component_mass_kg: float,
) -> Leaf:
    """Whole component as one leaf, keyed by its normalized name."""
    name = component_display_name(component)
    core = core_from_name(component.name_raw)
    base = dict(
        component_id=component.id,
        component_name=name,
        component_mass_kg=component_mass_kg,
        ingredient_core=core,
        label=name,
        share_pct=None,
        cooked_mass_kg=component_mass_kg,
    )
    return _resolve_mass(
        snapshot,
        base,
        core,
        component_mass_kg,
        ok_reason=Reason.COMPONENT_FALLBACK_OK,
        fallback=True,
    )


def unallocated_leaf(
    component: Optional[ComponentRow],
    parent_mass_kg: float,
    mass_kg: float,
    *,
    reason: str = Reason.UNALLOCATED_REMAINDER,
    core: str = UNALLOCATED_CORE,
) -> Leaf:
    """Mass no known share covers. Always unmapped, never dropped."""
    return Leaf(
        status=LeafStatus.UNMAPPED,
        reason=reason,
        component_id=component.id if component else None,
        component_name=component_display_name(component) if component else core,
        component_mass_kg=parent_mass_kg,
        ingredient_core=core,
        label=core,
        share_pct=None,
        cooked_mass_kg=mass_kg,
    )
