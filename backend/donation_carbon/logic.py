# donation_carbon/logic.py
# ---------------------------------------------------------
# This file contains BUSINESS LOGIC.
#
# - crud.py       -> "get me the rows for this donation"
# - allocation.py -> "turn those rows into classified leaves"
# - logic.py      -> run both, cache the result, build reports
#
# The mapping namespace (source_system) is always a parameter.
# Only routes.py / scripts fall back to the configured default.
# ---------------------------------------------------------

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from donation_carbon import crud
from donation_carbon.allocation import allocate
from donation_carbon.classify import LeafStatus, Reason
from donation_carbon.config import DEFAULT_POLICY, AllocationPolicy
from donation_carbon.errors import DataIntegrityError
from donation_carbon.models import Donation
from donation_carbon.results import (
    DonationBreakdown,
    UnmappedBuckets,
    aggregate,
    split_unmapped,
)
from donation_carbon.snapshot import DonationRow

logger = logging.getLogger(__name__)


# ---------------------------------------------------------
# 1) Compute one donation
# ---------------------------------------------------------

def write_cache(db: Session, breakdown: DonationBreakdown) -> bool:
    """
    Overwrite donation_metrics. A failure is logged, never raised:
    the cache is an optimization, the computed result stands.
    """
    totals = breakdown.totals
    try:
        crud.upsert_metrics(
            db,
            breakdown.donation_id,
            total_co2e_kg=totals.total_co2e_kg,
            total_food_mass_kg=totals.donated_weight_kg,
            unmapped_mass_kg=totals.unmapped_mass_kg,
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning(
            "donation_id=%s: failed to write donation_metrics: %s",
            breakdown.donation_id,
            e,
        )
        return False
    return True


def compute_donation(
    db: Session,
    donation_id: int,
    source_system: str,
    *,
    trace: bool = True,
    policy: AllocationPolicy = DEFAULT_POLICY,
    write_metrics: bool = True,
) -> DonationBreakdown:
    """
    Compute a donation's footprint and refresh its cached metrics.

    trace=False returns totals only (same computation, no leaf list).

    Raises:
      DonationNotFoundError - unknown id
      DataIntegrityError    - corrupted shares / weight / target
    """
    snapshot = crud.load_donation_snapshot(db, donation_id, source_system)

    try:
        leaves = allocate(snapshot, policy)
    except DataIntegrityError as e:
        logger.error("Aborted carbon computation: %s", e)
        raise

    breakdown = aggregate(snapshot.donation, leaves, source_system, include_leaves=trace)

    totals = breakdown.totals
    logger.info(
        "donation_id=%s source_system=%s weight=%.3fkg co2e=%.4fkg mapped=%.3f unmapped=%.3f ignored=%.3f",
        donation_id,
        source_system,
        totals.donated_weight_kg,
        totals.total_co2e_kg,
        totals.mapped_mass_kg,
        totals.unmapped_mass_kg,
        totals.ignored_mass_kg,
    )

    if write_metrics:
        write_cache(db, breakdown)

    return breakdown


def compute_unmapped_buckets(db: Session, donation_id: int, source_system: str) -> UnmappedBuckets:
    """Where the unmapped mass comes from: missing shares vs missing mappings/factors."""
    breakdown = compute_donation(db, donation_id, source_system, trace=True, write_metrics=False)
    return split_unmapped(donation_id, source_system, breakdown.leaves)


# ---------------------------------------------------------
# 2) Create + compute
# ---------------------------------------------------------

def create_donation_with_metrics(
    db: Session,
    *,
    donated_weight_kg: float,
    source_system: str,
    kitchen_id: Optional[str] = None,
    dish_id: Optional[int] = None,
    component_id: Optional[int] = None,
    donated_at=None,
) -> DonationBreakdown:
    """
    Insert a donation and compute its metrics in one go.

    The dish must exist and, when kitchen_id is given, belong to
    that kitchen. A component target must exist too.
    """
    if donated_weight_kg is None or donated_weight_kg <= 0:
        raise DataIntegrityError(f"invalid donated_weight_kg={donated_weight_kg!r}")
    if dish_id is None and component_id is None:
        raise DataIntegrityError("donation has neither dish_id nor component_id")

    if dish_id is not None:
        dish = crud.get_dish(db, dish_id)
        if dish is None:
            raise ValueError(f"Dish {dish_id} not found")
        if kitchen_id and dish.restaurant_id and str(dish.restaurant_id) != str(kitchen_id):
            raise ValueError(
                f"Dish {dish_id} belongs to restaurant_id={dish.restaurant_id}, not {kitchen_id}"
            )

    if component_id is not None:
        component = crud.get_component(db, component_id)
        if component is None:
            raise ValueError(f"Component {component_id} not found")
        if dish_id is not None and component.dish_id != dish_id:
            raise ValueError(f"Component {component_id} is not part of dish {dish_id}")

    donation = crud.create_donation(
        db,
        donated_weight_kg=donated_weight_kg,
        kitchen_id=kitchen_id,
        dish_id=dish_id,
        component_id=component_id,
        donated_at=donated_at,
    )
    db.commit()

    return compute_donation(db, donation.id, source_system)


# ---------------------------------------------------------
# 3) Unmapped ingredients of one component
# ---------------------------------------------------------
# Runs the normal allocation on a synthetic 1 kg donation of the
# component, so "significant" means exactly what it means in a
# real computation (after normalization, water/salt excluded,
# 10% threshold applied).
# ---------------------------------------------------------

@dataclass
class UnmappedIngredient:
    ingredient_core: str
    label: str
    share_pct: Optional[float]
    reason: str


def list_unmapped_for_component(
    db: Session,
    component_id: int,
    source_system: str,
    policy: AllocationPolicy = DEFAULT_POLICY,
) -> list[UnmappedIngredient]:
    component = crud.get_component(db, component_id)
    if component is None:
        raise ValueError(f"Component {component_id} not found")

    probe = DonationRow(
        id=0,
        donated_weight_kg=1.0,
        dish_id=component.dish_id,
        component_id=component_id,
    )
    snapshot = crud.load_snapshot(db, probe, source_system)
    try:
        leaves = allocate(snapshot, policy)
    except DataIntegrityError as e:
        # The synthetic donation id means nothing to the caller
        raise DataIntegrityError(e.message, record=e.record, observed_sum=e.observed_sum) from e

    out = [
        UnmappedIngredient(
            ingredient_core=leaf.ingredient_core,
            label=leaf.label,
            share_pct=leaf.share_pct,
            reason=leaf.reason,
        )
        for leaf in leaves
        if leaf.status == LeafStatus.UNMAPPED
        and leaf.reason in (Reason.NO_MAPPING, Reason.NO_FACTOR, Reason.RAW_CONVERSION_UNAVAILABLE)
    ]
    out.sort(key=lambda u: u.share_pct or 0.0, reverse=True)
    return out


# ---------------------------------------------------------
# 4) Range report
# ---------------------------------------------------------

@dataclass
class ReportRow:
    donation_id: int
    kitchen_id: Optional[str]
    dish_id: Optional[int]
    component_id: Optional[int]
    donated_at: Optional[str]
    donated_weight_kg: float
    total_co2e_kg: Optional[float]
    unmapped_mass_kg: Optional[float]
    error: Optional[str] = None


@dataclass
class DonationsReport:
    rows: list[ReportRow] = field(default_factory=list)
    total_weight_kg: float = 0.0
    total_co2e_kg: float = 0.0
    total_unmapped_mass_kg: float = 0.0
    missing_metrics: int = 0


def _report_row(db: Session, d: Donation, source_system: str, recompute_missing: bool) -> ReportRow:
    row = ReportRow(
        donation_id=d.id,
        kitchen_id=d.kitchen_id,
        dish_id=d.dish_id,
        component_id=d.component_id,
        donated_at=d.donated_at.isoformat() if d.donated_at else None,
        donated_weight_kg=float(d.donated_weight_kg),
        total_co2e_kg=None,
        unmapped_mass_kg=None,
    )

    metrics = crud.get_metrics(db, d.id)
    if metrics is not None:
        row.total_co2e_kg = metrics.total_co2e_kg
        row.unmapped_mass_kg = metrics.unmapped_mass_kg
        return row

    if not recompute_missing:
        return row

    try:
        result = compute_donation(db, d.id, source_system, trace=False)
    except DataIntegrityError as e:
        # One broken donation must not hide the rest of the report
        row.error = str(e)
        return row
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("donation_id=%s: report computation failed: %s", row.donation_id, e)
        row.error = f"database error: {e}"
        return row

    row.total_co2e_kg = result.totals.total_co2e_kg
    row.unmapped_mass_kg = result.totals.unmapped_mass_kg
    return row


def donations_report(
    db: Session,
    source_system: str,
    *,
    kitchen_id: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    recompute_missing: bool = True,
) -> DonationsReport:
    """
    Donations in a kitchen/date window with their cached totals.
    Donations without cached metrics are computed on the fly when
    recompute_missing is set.
    """
    report = DonationsReport()

    for d in crud.list_donations(db, kitchen_id, date_from, date_to):
        row = _report_row(db, d, source_system, recompute_missing)
        report.rows.append(row)

        report.total_weight_kg += row.donated_weight_kg
        if row.total_co2e_kg is None:
            report.missing_metrics += 1
            continue
        report.total_co2e_kg += row.total_co2e_kg
        report.total_unmapped_mass_kg += row.unmapped_mass_kg or 0.0

    return report
