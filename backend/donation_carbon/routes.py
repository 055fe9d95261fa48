# donation_carbon/routes.py
# ---------------------------------------------------------
# API ROUTES (endpoints).
#
# routes.py stays THIN:
#   1) read request input
#   2) call logic functions
#   3) convert engine errors into HTTP errors
#
#   DonationNotFoundError / ValueError -> 404 / 400
#   DataIntegrityError                 -> 422 (bad upstream data)
#
# Every endpoint takes an optional ?source_system=... (mapping
# namespace); the configured default is used when it is absent.
# ---------------------------------------------------------

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from donation_carbon import logic
from donation_carbon.config import DEFAULT_SOURCE_SYSTEM
from donation_carbon.db import get_db
from donation_carbon.errors import DataIntegrityError, DonationNotFoundError
from donation_carbon.schemas import (
    DonationBreakdownOut,
    DonationIn,
    DonationResultOut,
    DonationsReportOut,
    UnmappedBucketsOut,
    UnmappedIngredientOut,
)

router = APIRouter()


def source_system_param(
    source_system: Optional[str] = Query(None, min_length=1, max_length=50),
) -> str:
    return source_system or DEFAULT_SOURCE_SYSTEM


def _integrity_error(e: DataIntegrityError) -> HTTPException:
    return HTTPException(status_code=422, detail=str(e))


# ---------------------------------------------------------
# POST /donations
# ---------------------------------------------------------
# Create a donation and compute its metrics.
#
# Example request JSON:
# {
#   "kitchen_id": "8f1c...", "dish_id": 18, "donated_weight_kg": 15
# }
# ---------------------------------------------------------

@router.post("/donations", response_model=DonationResultOut, status_code=201)
def create_donation_endpoint(
    req: DonationIn,
    source_system: str = Depends(source_system_param),
    db: Session = Depends(get_db),
):
    try:
        result = logic.create_donation_with_metrics(
            db,
            donated_weight_kg=req.donated_weight_kg,
            source_system=source_system,
            kitchen_id=req.kitchen_id,
            dish_id=req.dish_id,
            component_id=req.component_id,
            donated_at=req.donated_at,
        )
    except DataIntegrityError as e:
        raise _integrity_error(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return DonationResultOut.model_validate(result)


# ---------------------------------------------------------
# GET /donations?kitchen_id=...&date_from=...&date_to=...
# ---------------------------------------------------------

@router.get("/donations", response_model=DonationsReportOut)
def donations_report_endpoint(
    kitchen_id: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    recompute_missing: bool = True,
    source_system: str = Depends(source_system_param),
    db: Session = Depends(get_db),
):
    if date_from and date_to and date_from > date_to:
        raise HTTPException(status_code=400, detail="date_from is after date_to")

    report = logic.donations_report(
        db,
        source_system,
        kitchen_id=kitchen_id,
        date_from=date_from,
        date_to=date_to,
        recompute_missing=recompute_missing,
    )
    return DonationsReportOut.model_validate(report)


# ---------------------------------------------------------
# GET /donations/{donation_id}/result
# GET /donations/{donation_id}/breakdown
# ---------------------------------------------------------
# Both recompute and refresh the cache; /breakdown also returns
# one row per mass fragment for debugging mappings.
# ---------------------------------------------------------

@router.get("/donations/{donation_id}/result", response_model=DonationResultOut)
def donation_result_endpoint(
    donation_id: int,
    source_system: str = Depends(source_system_param),
    db: Session = Depends(get_db),
):
    try:
        result = logic.compute_donation(db, donation_id, source_system, trace=False)
    except DonationNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DataIntegrityError as e:
        raise _integrity_error(e)
    return DonationResultOut.model_validate(result)


@router.get("/donations/{donation_id}/breakdown", response_model=DonationBreakdownOut)
def donation_breakdown_endpoint(
    donation_id: int,
    source_system: str = Depends(source_system_param),
    db: Session = Depends(get_db),
):
    try:
        result = logic.compute_donation(db, donation_id, source_system, trace=True)
    except DonationNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DataIntegrityError as e:
        raise _integrity_error(e)
    return DonationBreakdownOut.model_validate(result)


@router.get("/donations/{donation_id}/buckets", response_model=UnmappedBucketsOut)
def donation_buckets_endpoint(
    donation_id: int,
    source_system: str = Depends(source_system_param),
    db: Session = Depends(get_db),
):
    try:
        buckets = logic.compute_unmapped_buckets(db, donation_id, source_system)
    except DonationNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DataIntegrityError as e:
        raise _integrity_error(e)
    return UnmappedBucketsOut.model_validate(buckets)


# ---------------------------------------------------------
# GET /components/{component_id}/unmapped
# ---------------------------------------------------------
# Significant ingredients still lacking a usable mapping.
# This is the worklist for whoever maintains ingredient_mappings.
# ---------------------------------------------------------

@router.get("/components/{component_id}/unmapped", response_model=list[UnmappedIngredientOut])
def component_unmapped_endpoint(
    component_id: int,
    source_system: str = Depends(source_system_param),
    db: Session = Depends(get_db),
):
    try:
        rows = logic.list_unmapped_for_component(db, component_id, source_system)
    except DataIntegrityError as e:
        raise _integrity_error(e)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return [UnmappedIngredientOut.model_validate(r) for r in rows]
