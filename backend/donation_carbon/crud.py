# donation_carbon/crud.py
# ---------------------------------------------------------
# CRUD = Create, Read, Update, Delete
#
# Functions that TALK TO THE DATABASE. No allocation math here:
# - models.py     -> what tables look like
# - crud.py       -> reads/writes rows in those tables
# - allocation.py -> turns the rows into masses and emissions
# - logic.py      -> glues the two together per donation
#
# Reads for one donation are batched: one query per table,
# never one query per ingredient.
# ---------------------------------------------------------

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from donation_carbon.classify import UNKNOWN_CORE, core_from_name
from donation_carbon.errors import DonationNotFoundError
from donation_carbon.models import (
    ComponentIngredient,
    Dish,
    DishComponent,
    Donation,
    DonationMetrics,
    IngredientMapping,
    ReferenceFood,
)
from donation_carbon.snapshot import (
    ComponentRow,
    DonationRow,
    DonationSnapshot,
    IngredientRow,
    MappingRow,
    ReferenceFoodRow,
)


# ---------------------------------------------------------
# ORM -> snapshot rows
# ---------------------------------------------------------

def _donation_row(d: Donation) -> DonationRow:
    return DonationRow(
        id=d.id,
        donated_weight_kg=d.donated_weight_kg,
        dish_id=d.dish_id,
        component_id=d.component_id,
        kitchen_id=d.kitchen_id,
    )


def _component_row(c: DishComponent) -> ComponentRow:
    return ComponentRow(
        id=c.id,
        dish_id=c.dish_id,
        name_raw=c.name_raw,
        plate_share=c.plate_share,
        component_type=c.component_type,
    )


def _ingredient_row(r: ComponentIngredient) -> IngredientRow:
    return IngredientRow(
        component_id=r.component_id,
        ingredient_core=r.ingredient_core,
        share_of_component=r.share_of_component,
        is_water=bool(r.is_water),
        is_salt=bool(r.is_salt),
        base_name=r.base_name,
        seq_no=r.seq_no,
    )


def _mapping_row(m: IngredientMapping) -> MappingRow:
    return MappingRow(
        ingredient_core=m.ingredient_core,
        weight_state=m.weight_state,
        reference_food_id=m.reference_food_id,
        yield_cooked_per_raw=m.yield_cooked_per_raw,
        co2_override_per_kg=m.co2_override_per_kg,
        match_type=m.match_type,
    )


def _food_row(f: ReferenceFood) -> ReferenceFoodRow:
    return ReferenceFoodRow(
        food_id=f.food_id,
        kg_co2e_per_kg=f.kg_co2e_per_kg,
        g_co2e_per_100g=f.g_co2e_per_100g,
        name_fi=f.name_fi,
        name_en=f.name_en,
    )


# ---------------------------------------------------------
# Reads
# ---------------------------------------------------------

def get_donation(db: Session, donation_id: int) -> Donation:
    donation = db.get(Donation, donation_id)
    if donation is None:
        raise DonationNotFoundError(donation_id)
    return donation


def get_dish(db: Session, dish_id: int) -> Dish | None:
    return db.get(Dish, dish_id)


def get_component(db: Session, component_id: int) -> DishComponent | None:
    return db.get(DishComponent, component_id)


def load_components(db: Session, dish_id: int) -> list[ComponentRow]:
    stmt = (
        select(DishComponent)
        .where(DishComponent.dish_id == dish_id)
        .order_by(DishComponent.id)
    )
    return [_component_row(c) for c in db.execute(stmt).scalars().all()]


def load_ingredients(db: Session, component_ids: list[int]) -> dict[int, list[IngredientRow]]:
    """component_id -> rows ordered by seq_no (rows without seq_no last), then id."""
    if not component_ids:
        return {}

    stmt = (
        select(ComponentIngredient)
        .where(ComponentIngredient.component_id.in_(component_ids))
        .order_by(
            ComponentIngredient.component_id,
            ComponentIngredient.seq_no.is_(None),
            ComponentIngredient.seq_no,
            ComponentIngredient.id,
        )
    )

    out: dict[int, list[IngredientRow]] = {}
    for r in db.execute(stmt).scalars().all():
        out.setdefault(r.component_id, []).append(_ingredient_row(r))
    return out


def load_active_mappings(
    db: Session,
    source_system: str,
    cores: Iterable[str],
) -> dict[str, MappingRow]:
    cores = sorted(set(cores))
    if not cores:
        return {}

    stmt = select(IngredientMapping).where(
        IngredientMapping.source_system == source_system,
        IngredientMapping.is_active.is_(True),
        IngredientMapping.ingredient_core.in_(cores),
    )
    return {m.ingredient_core: _mapping_row(m) for m in db.execute(stmt).scalars().all()}


def load_reference_foods(db: Session, food_ids: Iterable[int]) -> dict[int, ReferenceFoodRow]:
    food_ids = sorted(set(food_ids))
    if not food_ids:
        return {}

    stmt = select(ReferenceFood).where(ReferenceFood.food_id.in_(food_ids))
    return {f.food_id: _food_row(f) for f in db.execute(stmt).scalars().all()}


def load_snapshot(db: Session, donation_row: DonationRow, source_system: str) -> DonationSnapshot:
    """
    Everything the allocation engine needs for one donation.

    Mapping lookups include the name-derived core of every
    component WITHOUT ingredient rows (component-level fallback).
    """
    if donation_row.component_id is not None:
        comp = get_component(db, donation_row.component_id)
        components = [_component_row(comp)] if comp else []
    elif donation_row.dish_id is not None:
        components = load_components(db, donation_row.dish_id)
    else:
        components = []

    ingredients = load_ingredients(db, [c.id for c in components])

    cores = {r.ingredient_core for rows in ingredients.values() for r in rows}
    for c in components:
        if c.id not in ingredients:
            core = core_from_name(c.name_raw)
            if core != UNKNOWN_CORE:
                cores.add(core)

    mappings = load_active_mappings(db, source_system, cores)
    foods = load_reference_foods(
        db,
        (m.reference_food_id for m in mappings.values() if m.reference_food_id is not None),
    )

    return DonationSnapshot(
        donation=donation_row,
        source_system=source_system,
        components=components,
        ingredients=ingredients,
        mappings=mappings,
        foods=foods,
    )


def load_donation_snapshot(db: Session, donation_id: int, source_system: str) -> DonationSnapshot:
    return load_snapshot(db, _donation_row(get_donation(db, donation_id)), source_system)


def get_metrics(db: Session, donation_id: int) -> DonationMetrics | None:
    return db.get(DonationMetrics, donation_id)


def list_donations(
    db: Session,
    kitchen_id: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    limit: int = 5000,
) -> list[Donation]:
    """Donations ordered by time; date_to is inclusive (whole day)."""
    stmt = select(Donation)
    if kitchen_id:
        stmt = stmt.where(Donation.kitchen_id == kitchen_id)
    if date_from:
        stmt = stmt.where(Donation.donated_at >= datetime.combine(date_from, time.min))
    if date_to:
        stmt = stmt.where(Donation.donated_at < datetime.combine(date_to + timedelta(days=1), time.min))
    stmt = stmt.order_by(Donation.donated_at, Donation.id).limit(limit)
    return list(db.execute(stmt).scalars().all())


def list_donation_ids(db: Session, limit: int = 500) -> list[int]:
    stmt = select(Donation.id).order_by(Donation.id).limit(limit)
    return list(db.execute(stmt).scalars().all())


def list_donation_ids_missing_metrics(db: Session, limit: int = 500) -> list[int]:
    stmt = (
        select(Donation.id)
        .outerjoin(DonationMetrics, DonationMetrics.donation_id == Donation.id)
        .where(DonationMetrics.donation_id.is_(None))
        .order_by(Donation.id)
        .limit(limit)
    )
    return list(db.execute(stmt).scalars().all())


# ---------------------------------------------------------
# Writes
# ---------------------------------------------------------

def create_donation(
    db: Session,
    *,
    donated_weight_kg: float,
    kitchen_id: Optional[str] = None,
    dish_id: Optional[int] = None,
    component_id: Optional[int] = None,
    donated_at: Optional[datetime] = None,
) -> Donation:
    donation = Donation(
        kitchen_id=kitchen_id,
        dish_id=dish_id,
        component_id=component_id,
        donated_weight_kg=donated_weight_kg,
    )
    if donated_at is not None:
        donation.donated_at = donated_at

    db.add(donation)
    db.flush()  # donation.id available before commit
    return donation


def upsert_metrics(
    db: Session,
    donation_id: int,
    *,
    total_co2e_kg: float,
    total_food_mass_kg: float,
    unmapped_mass_kg: float,
) -> DonationMetrics:
    """
    Insert or overwrite the cached result (no commit).
    """
    existing = db.get(DonationMetrics, donation_id)
    if existing:
        existing.total_co2e_kg = total_co2e_kg
        existing.total_food_mass_kg = total_food_mass_kg
        existing.unmapped_mass_kg = unmapped_mass_kg
        existing.computed_at = func.now()
        return existing

    row = DonationMetrics(
        donation_id=donation_id,
        total_co2e_kg=total_co2e_kg,
        total_food_mass_kg=total_food_mass_kg,
        unmapped_mass_kg=unmapped_mass_kg,
    )
    db.add(row)
    return row
