# donation_carbon/models.py
# ---------------------------------------------------------
# This file defines the DATABASE TABLES for the application.
#
# Each class = one table
# Each attribute = one column
#
# Reading order follows the composition tree:
#   ReferenceFood      <- emission factors (kg CO2e / kg)
#   Dish -> DishComponent -> ComponentIngredient
#   IngredientMapping  <- ingredient_core -> ReferenceFood
#   Donation           <- weighed surplus, targets a dish or a component
#   DonationMetrics    <- cached result, safe to overwrite
# ---------------------------------------------------------

from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    String,
    Integer,
    Float,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from donation_carbon.db import Base


# ---------------------------------------------------------
# ReferenceFood table
# ---------------------------------------------------------
# One row per reference food of the climate dataset
# (e.g. Luke FoodGWP). At least one of the two factor columns
# must be set for a mapping to it to be usable.
# ---------------------------------------------------------

class ReferenceFood(Base):
    __tablename__ = "reference_foods"

    # Dataset's own id (FOODID), not autoincrement
    food_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)

    name_fi: Mapped[str | None] = mapped_column(String(300), nullable=True)
    name_en: Mapped[str | None] = mapped_column(String(300), nullable=True)
    name_sv: Mapped[str | None] = mapped_column(String(300), nullable=True)

    fuclass: Mapped[str | None] = mapped_column(String(50), nullable=True)
    igclass: Mapped[str | None] = mapped_column(String(50), nullable=True)

    kg_co2e_per_kg: Mapped[float | None] = mapped_column(Float, nullable=True)
    g_co2e_per_100g: Mapped[float | None] = mapped_column(Float, nullable=True)

    data_quality: Mapped[str | None] = mapped_column(String(100), nullable=True)
    average_source: Mapped[str | None] = mapped_column(String(200), nullable=True)


# ---------------------------------------------------------
# Dish table
# ---------------------------------------------------------
# A menu occurrence, e.g. "Chicken curry with rice" on a date.
# ---------------------------------------------------------

class Dish(Base):
    __tablename__ = "dishes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    restaurant_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    menu_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    title_fi: Mapped[str | None] = mapped_column(String(500), nullable=True)
    title_en: Mapped[str | None] = mapped_column(String(500), nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)

    components: Mapped[list["DishComponent"]] = relationship(
        back_populates="dish",
        cascade="all, delete-orphan",
        order_by="DishComponent.id",
    )

    __table_args__ = (
        Index("idx_dishes_restaurant_date", "restaurant_id", "menu_date"),
    )


# ---------------------------------------------------------
# DishComponent table
# ---------------------------------------------------------
# A part of a dish ("Boiled rice", "Curry sauce").
# plate_share = fraction of the dish's mass (0..1), optional.
# ---------------------------------------------------------

class DishComponent(Base):
    __tablename__ = "dish_components"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    dish_id: Mapped[int] = mapped_column(
        ForeignKey("dishes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name_raw: Mapped[str] = mapped_column(String(500), nullable=False)
    component_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    plate_share: Mapped[float | None] = mapped_column(Float, nullable=True)

    dish: Mapped["Dish"] = relationship(back_populates="components")
    ingredients: Mapped[list["ComponentIngredient"]] = relationship(
        back_populates="component",
        cascade="all, delete-orphan",
    )


# ---------------------------------------------------------
# ComponentIngredient table
# ---------------------------------------------------------
# One ingredient of a component, already parsed upstream.
# share_of_component is a PERCENTAGE (0..100), optional.
# ingredient_core is the normalized key used for mapping lookup.
# ---------------------------------------------------------

class ComponentIngredient(Base):
    __tablename__ = "component_ingredients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    component_id: Mapped[int] = mapped_column(
        ForeignKey("dish_components.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    seq_no: Mapped[int | None] = mapped_column(Integer, nullable=True)
    ingredient_raw: Mapped[str | None] = mapped_column(String(500), nullable=True)
    base_name: Mapped[str | None] = mapped_column(String(300), nullable=True)
    ingredient_core: Mapped[str] = mapped_column(String(200), nullable=False)

    share_of_component: Mapped[float | None] = mapped_column(Float, nullable=True)

    is_water: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_salt: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    component: Mapped["DishComponent"] = relationship(back_populates="ingredients")


# ---------------------------------------------------------
# IngredientMapping table
# ---------------------------------------------------------
# ingredient_core (within a source_system namespace)
#   -> reference food + how to apply its factor.
#
# weight_state:
#   "cooked" -> factor applies to the donated (cooked) mass
#   "raw"    -> factor applies to cooked / yield_cooked_per_raw
#   "ignore" -> excluded from emissions
#
# Only ONE active mapping per (source_system, ingredient_core);
# inactive rows are kept as history.
# ---------------------------------------------------------

class IngredientMapping(Base):
    __tablename__ = "ingredient_mappings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    source_system: Mapped[str] = mapped_column(String(50), nullable=False, default="SODEXO")
    ingredient_core: Mapped[str] = mapped_column(String(200), nullable=False)

    reference_food_id: Mapped[int | None] = mapped_column(
        ForeignKey("reference_foods.food_id"),
        nullable=True,
    )

    # "exact" | "similar" | "category" | "unknown"
    match_type: Mapped[str] = mapped_column(String(20), nullable=False, default="unknown")

    weight_state: Mapped[str] = mapped_column(String(10), nullable=False, default="ignore")

    # y = cooked_kg / raw_kg
    yield_cooked_per_raw: Mapped[float | None] = mapped_column(Float, nullable=True)

    co2_override_per_kg: Mapped[float | None] = mapped_column(Float, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    reference_food: Mapped[Optional["ReferenceFood"]] = relationship()

    __table_args__ = (
        Index(
            "uq_ingredient_mappings_active_core",
            "source_system",
            "ingredient_core",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active"),
        ),
    )


# ---------------------------------------------------------
# Donation table
# ---------------------------------------------------------
# A weighed quantity of surplus food. Targets a dish (weight is
# split over its components) or one component directly.
# ---------------------------------------------------------

class Donation(Base):
    __tablename__ = "donations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # Restaurant / kitchen identifier (free text, usually a UUID)
    kitchen_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    dish_id: Mapped[int | None] = mapped_column(ForeignKey("dishes.id"), nullable=True)
    component_id: Mapped[int | None] = mapped_column(
        ForeignKey("dish_components.id"),
        nullable=True,
    )

    donated_weight_kg: Mapped[float] = mapped_column(Float, nullable=False)

    donated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    metrics: Mapped[Optional["DonationMetrics"]] = relationship(
        back_populates="donation",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("idx_donations_kitchen_time", "kitchen_id", "donated_at"),
    )


# ---------------------------------------------------------
# DonationMetrics table
# ---------------------------------------------------------
# Cache of the last computation. Derived data: recomputing a
# donation overwrites it, nothing reads it as a source of truth.
# ---------------------------------------------------------

class DonationMetrics(Base):
    __tablename__ = "donation_metrics"

    donation_id: Mapped[int] = mapped_column(
        ForeignKey("donations.id", ondelete="CASCADE"),
        primary_key=True,
    )

    total_co2e_kg: Mapped[float] = mapped_column(Float, nullable=False)
    total_food_mass_kg: Mapped[float] = mapped_column(Float, nullable=False)
    unmapped_mass_kg: Mapped[float] = mapped_column(Float, nullable=False)

    computed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    donation: Mapped["Donation"] = relationship(back_populates="metrics")
