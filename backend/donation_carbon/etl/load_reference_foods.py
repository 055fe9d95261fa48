# etl/load_reference_foods.py
# ---------------------------------------------------------
# ETL SCRIPT (Extract -> Transform -> Load)
#
# GOAL:
# - Read the reference climate dataset (Luke FoodGWP CSV)
# - Upsert one reference_foods row per FOODID
#
# EXPECTED CSV HEADERS:
#   FOODID, FOODNAME_FI, FOODNAME_EN, FOODNAME_SV,
#   FUCLASS, IGCLASS, kgCO2-eq/kg, gCO2-eq/100g,
#   Data quality, Average_source
#
# SAFE TO RUN MULTIPLE TIMES:
# - existing food ids are updated in place
# ---------------------------------------------------------

from __future__ import annotations

import csv
import logging
import os

from sqlalchemy.orm import Session

from donation_carbon.config import configure_logging
from donation_carbon.db import SessionLocal, Base, engine
from donation_carbon.models import ReferenceFood
from donation_carbon.shares import to_number

logger = logging.getLogger(__name__)

BATCH_SIZE = 500


def _text(row: dict, key: str) -> str | None:
    v = (row.get(key) or "").strip()
    return v or None


def parse_row(row: dict) -> dict | None:
    """
    CSV row -> column values. Rows without a numeric FOODID are skipped.

    Decimal commas ("1,23") are accepted for the factor columns.
    """
    food_id = to_number(_text(row, "FOODID"))
    if food_id is None:
        return None

    def factor(key: str) -> float | None:
        raw = _text(row, key)
        return to_number(raw.replace(",", ".")) if raw else None

    return {
        "food_id": int(food_id),
        "name_fi": _text(row, "FOODNAME_FI"),
        "name_en": _text(row, "FOODNAME_EN"),
        "name_sv": _text(row, "FOODNAME_SV"),
        "fuclass": _text(row, "FUCLASS"),
        "igclass": _text(row, "IGCLASS"),
        "kg_co2e_per_kg": factor("kgCO2-eq/kg"),
        "g_co2e_per_100g": factor("gCO2-eq/100g"),
        "data_quality": _text(row, "Data quality"),
        "average_source": _text(row, "Average_source"),
    }


def upsert_reference_food(db: Session, values: dict) -> bool:
    """Returns True when a new row was inserted."""
    existing = db.get(ReferenceFood, values["food_id"])
    if existing:
        for k, v in values.items():
            setattr(existing, k, v)
        return False

    db.add(ReferenceFood(**values))
    return True


def load_rows(db: Session, rows) -> tuple[int, int, int]:
    """
    Upsert parsed rows, committing every BATCH_SIZE rows.
    Returns (inserted, updated, skipped).
    """
    inserted = updated = skipped = 0
    pending = 0

    for row in rows:
        values = parse_row(row)
        if values is None:
            skipped += 1
            continue

        if upsert_reference_food(db, values):
            inserted += 1
        else:
            updated += 1

        pending += 1
        if pending >= BATCH_SIZE:
            db.commit()
            logger.info("Committed batch (%d rows so far)", inserted + updated)
            pending = 0

    db.commit()
    return inserted, updated, skipped


def run(csv_path: str) -> None:
    Base.metadata.create_all(bind=engine)

    with SessionLocal() as db:
        with open(csv_path, newline="", encoding="utf-8-sig") as f:
            inserted, updated, skipped = load_rows(db, csv.DictReader(f))

    print(
        f"Reference foods loaded from {csv_path}: "
        f"inserted={inserted}, updated={updated}, skipped={skipped}"
    )


if __name__ == "__main__":
    configure_logging()
    run(os.getenv("CSV_PATH", "FoodGWP_dataset_1.09_fixed.csv"))
