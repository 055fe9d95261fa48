# donation_carbon/results.py
# ---------------------------------------------------------
# Result aggregation: leaves -> per-donation totals.
# ---------------------------------------------------------

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional

from donation_carbon.classify import MISSING_SHARE_REASONS, Leaf, LeafStatus
from donation_carbon.snapshot import DonationRow


@dataclass(frozen=True)
class DonationTotals:
    donated_weight_kg: float
    mapped_mass_kg: float
    unmapped_mass_kg: float
    ignored_mass_kg: float
    total_co2e_kg: float

    @property
    def co2_per_kg(self) -> float:
        if self.donated_weight_kg <= 0:
            return 0.0
        return self.total_co2e_kg / self.donated_weight_kg

    @property
    def accounted_mass_kg(self) -> float:
        return self.mapped_mass_kg + self.unmapped_mass_kg + self.ignored_mass_kg


@dataclass(frozen=True)
class DonationBreakdown:
    donation_id: int
    source_system: str
    dish_id: Optional[int]
    component_id: Optional[int]
    totals: DonationTotals
    # Empty when computed without a trace
    leaves: list[Leaf] = field(default_factory=list)


@dataclass(frozen=True)
class UnmappedBuckets:
    donation_id: int
    source_system: str
    missing_share_mass_kg: float
    mapping_or_factor_unmapped_mass_kg: float


def sum_leaves(donated_weight_kg: float, leaves: Iterable[Leaf]) -> DonationTotals:
    mapped = unmapped = ignored = co2e = 0.0
    for leaf in leaves:
        if leaf.status == LeafStatus.MAPPED:
            mapped += leaf.cooked_mass_kg
            co2e += leaf.co2e_kg
        elif leaf.status == LeafStatus.IGNORED:
            ignored += leaf.cooked_mass_kg
        else:
            unmapped += leaf.cooked_mass_kg

    return DonationTotals(
        donated_weight_kg=donated_weight_kg,
        mapped_mass_kg=mapped,
        unmapped_mass_kg=unmapped,
        ignored_mass_kg=ignored,
        total_co2e_kg=co2e,
    )


def aggregate(
    donation: DonationRow,
    leaves: list[Leaf],
    source_system: str,
    *,
    include_leaves: bool = True,
) -> DonationBreakdown:
    return DonationBreakdown(
        donation_id=donation.id,
        source_system=source_system,
        dish_id=donation.dish_id,
        component_id=donation.component_id,
        totals=sum_leaves(float(donation.donated_weight_kg), leaves),
        leaves=list(leaves) if include_leaves else [],
    )


def split_unmapped(
    donation_id: int,
    source_system: str,
    leaves: Iterable[Leaf],
) -> UnmappedBuckets:
    """
    Unmapped mass in two buckets:
      missing share      -> we can't tell how the mass splits
      mapping or factor  -> split known, but no usable mapping/factor/yield
    """
    missing = other = 0.0
    for leaf in leaves:
        if leaf.status != LeafStatus.UNMAPPED:
            continue
        if leaf.reason in MISSING_SHARE_REASONS:
            missing += leaf.cooked_mass_kg
        else:
            other += leaf.cooked_mass_kg
    return UnmappedBuckets(donation_id, source_system, missing, other)
