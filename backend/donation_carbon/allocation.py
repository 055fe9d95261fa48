# donation_carbon/allocation.py
# ---------------------------------------------------------
# Allocation tree walker.
#
# Walks one donation top-down:
#
#   donation weight
#     -> components       (plate_share, dish targets only)
#       -> ingredients    (share_of_component)
#         -> classified leaves
#
# and returns the flat list of leaves. Every kilogram of the
# donation ends up in exactly one leaf, so summing the leaves
# by status always gives back the donated weight.
# ---------------------------------------------------------

from __future__ import annotations

import logging

from donation_carbon.classify import (
    NO_COMPONENTS_CORE,
    Leaf,
    Reason,
    classify_component_fallback,
    classify_ingredient,
    unallocated_leaf,
)
from donation_carbon.config import DEFAULT_POLICY, AllocationPolicy
from donation_carbon.errors import DataIntegrityError
from donation_carbon.shares import normalize_shares, to_number
from donation_carbon.snapshot import ComponentRow, DonationSnapshot

logger = logging.getLogger(__name__)


def validate_donation(snapshot: DonationSnapshot) -> float:
    donation = snapshot.donation
    weight = to_number(donation.donated_weight_kg)
    if weight is None or weight <= 0:
        raise DataIntegrityError(
            f"invalid donated_weight_kg={donation.donated_weight_kg!r}",
            donation_id=donation.id,
        )
    if donation.component_id is None and donation.dish_id is None:
        raise DataIntegrityError(
            "donation has neither dish_id nor component_id",
            donation_id=donation.id,
        )
    return weight


def component_allocations(
    snapshot: DonationSnapshot,
    weight_kg: float,
    policy: AllocationPolicy,
) -> tuple[list[tuple[ComponentRow, float]], float]:
    """
    Split the donated weight across components.

    Returns ([(component, mass_kg), ...], unallocated_kg).
    """
    donation = snapshot.donation

    if donation.component_id is not None:
        component = snapshot.component(donation.component_id)
        if component is None:
            # Targeted row is gone; keep the mass visible as an unmappable component
            logger.warning(
                "donation_id=%s targets missing component_id=%s",
                donation.id,
                donation.component_id,
            )
            component = ComponentRow(
                id=donation.component_id,
                dish_id=donation.dish_id,
                name_raw=None,
            )
        return [(component, weight_kg)], 0.0

    components = snapshot.components
    if not components:
        return [], weight_kg

    shares = normalize_shares(
        [c.plate_share for c in components],
        1.0,
        policy.plate_close_eps,
        policy.plate_over_eps,
        fill_missing=True,
        equal_split_fallback=True,
        label=f"dish_id={donation.dish_id} plate_share",
    )
    allocations = [
        (c, weight_kg * (frac or 0.0))
        for c, frac in zip(components, shares.fractions)
    ]
    return allocations, weight_kg * shares.remainder_fraction


def walk_component(
    snapshot: DonationSnapshot,
    component: ComponentRow,
    component_mass_kg: float,
    policy: AllocationPolicy,
) -> list[Leaf]:
    rows = snapshot.ingredients_for(component.id)

    if not rows:
        return [classify_component_fallback(snapshot, component, component_mass_kg)]

    shares = normalize_shares(
        [r.share_of_component for r in rows],
        100.0,
        policy.ingredient_close_eps,
        policy.ingredient_over_eps,
        fill_missing=False,
        equal_split_fallback=False,
        label=f"component_id={component.id} share_of_component",
    )

    leaves = [
        classify_ingredient(snapshot, component, component_mass_kg, row, frac, policy)
        for row, frac in zip(rows, shares.fractions)
    ]

    remainder_kg = component_mass_kg * shares.remainder_fraction
    if remainder_kg > policy.mass_epsilon_kg:
        logger.debug(
            "component_id=%s: %.1f%% of %.3f kg unallocated",
            component.id,
            shares.remainder_fraction * 100,
            component_mass_kg,
        )
        leaves.append(unallocated_leaf(component, component_mass_kg, remainder_kg))

    return leaves


def allocate(
    snapshot: DonationSnapshot,
    policy: AllocationPolicy = DEFAULT_POLICY,
) -> list[Leaf]:
    """
    Allocate a donation into classified leaves.

    Raises DataIntegrityError (tagged with the donation id) for
    share sums over the hard tolerance, non-positive weights and
    donations without a target.
    """
    donation = snapshot.donation
    try:
        weight_kg = validate_donation(snapshot)
        allocations, dish_remainder_kg = component_allocations(snapshot, weight_kg, policy)

        if not allocations:
            return [
                unallocated_leaf(
                    None,
                    weight_kg,
                    weight_kg,
                    reason=Reason.NO_COMPONENTS,
                    core=NO_COMPONENTS_CORE,
                )
            ]

        leaves: list[Leaf] = []
        for component, mass_kg in allocations:
            leaves.extend(walk_component(snapshot, component, mass_kg, policy))

        if dish_remainder_kg > policy.mass_epsilon_kg:
            leaves.append(unallocated_leaf(None, weight_kg, dish_remainder_kg))

        return leaves
    except DataIntegrityError as e:
        if e.donation_id is None:
            raise e.with_donation(donation.id) from e
        raise
