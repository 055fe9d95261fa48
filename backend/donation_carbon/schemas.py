# donation_carbon/schemas.py
# ---------------------------------------------------------
# This file defines Pydantic SCHEMAS.
#
# Schemas:
# - validate incoming requests
# - control outgoing responses
#
# The engine returns plain dataclasses (results.py); the
# *Out schemas read them with from_attributes=True.
# ---------------------------------------------------------

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from donation_carbon.classify import LeafStatus
from donation_carbon.factors import FactorSource


# ---------------------------------------------------------
# Donation input
# ---------------------------------------------------------

class DonationIn(BaseModel):
    kitchen_id: Optional[str] = None
    dish_id: Optional[int] = Field(None, gt=0)
    component_id: Optional[int] = Field(None, gt=0)
    donated_weight_kg: float = Field(..., gt=0)  # must be > 0
    donated_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _needs_target(self):
        if self.dish_id is None and self.component_id is None:
            raise ValueError("either dish_id or component_id is required")
        return self


# ---------------------------------------------------------
# Totals (also what the metrics cache stores)
# ---------------------------------------------------------

class TotalsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    donated_weight_kg: float
    total_co2e_kg: float
    co2_per_kg: float
    mapped_mass_kg: float
    unmapped_mass_kg: float
    ignored_mass_kg: float


class DonationResultOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    donation_id: int
    source_system: str
    dish_id: Optional[int] = None
    component_id: Optional[int] = None
    totals: TotalsOut


# ---------------------------------------------------------
# Per-leaf trace
# ---------------------------------------------------------
# One row per mass fragment. Example:
# {
#   "status": "mapped", "reason": "ok",
#   "component_id": 12, "ingredient_core": "KANANRINTA",
#   "share_pct": 45.0, "cooked_mass_kg": 2.7,
#   "factor_source": "reference_kg", "factor_kg_per_kg": 5.3,
#   "co2e_kg": 14.31
# }
# ---------------------------------------------------------

class LeafOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: LeafStatus
    reason: str
    component_id: Optional[int] = None
    component_name: str
    component_mass_kg: float
    ingredient_core: str
    label: str
    share_pct: Optional[float] = None
    cooked_mass_kg: float
    reference_food_id: Optional[int] = None
    reference_food_name: Optional[str] = None
    factor_source: FactorSource
    factor_kg_per_kg: Optional[float] = None
    mass_for_factor_kg: float
    co2e_kg: float


class DonationBreakdownOut(DonationResultOut):
    leaves: List[LeafOut]


class UnmappedBucketsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    donation_id: int
    source_system: str
    missing_share_mass_kg: float
    mapping_or_factor_unmapped_mass_kg: float


class UnmappedIngredientOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    ingredient_core: str
    label: str
    share_pct: Optional[float] = None
    reason: str


# ---------------------------------------------------------
# Range report
# ---------------------------------------------------------

class ReportRowOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    donation_id: int
    kitchen_id: Optional[str] = None
    dish_id: Optional[int] = None
    component_id: Optional[int] = None
    donated_at: Optional[str] = None
    donated_weight_kg: float
    total_co2e_kg: Optional[float] = None
    unmapped_mass_kg: Optional[float] = None
    error: Optional[str] = None


class DonationsReportOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    rows: List[ReportRowOut]
    total_weight_kg: float
    total_co2e_kg: float
    total_unmapped_mass_kg: float
    missing_metrics: int
