# etl/recompute_metrics.py
# ---------------------------------------------------------
# This script is meant to be run by cron (or manually).
#
# Goal:
#   Refresh donation_metrics for many donations, e.g. after new
#   ingredient mappings were added.
#
#   - default: only donations that have no cached metrics yet
#   - ALL=1:   every donation (up to LIMIT)
#
# Donations are independent, so they are computed in parallel,
# one Session per worker. A donation with corrupted share data
# is reported and skipped; it never stops the batch.
# ---------------------------------------------------------

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError

from donation_carbon import crud, logic
from donation_carbon.config import DEFAULT_SOURCE_SYSTEM, configure_logging
from donation_carbon.db import SessionLocal
from donation_carbon.errors import DataIntegrityError, DonationNotFoundError

logger = logging.getLogger(__name__)


@dataclass
class RecomputeSummary:
    computed: int = 0
    total_co2e_kg: float = 0.0
    failed: dict[int, str] = field(default_factory=dict)


def _recompute_one(session_factory, donation_id: int, source_system: str) -> float:
    with session_factory() as db:
        result = logic.compute_donation(db, donation_id, source_system, trace=False)
        return result.totals.total_co2e_kg


def recompute(
    donation_ids: list[int],
    source_system: str,
    *,
    workers: int = 4,
    session_factory=SessionLocal,
) -> RecomputeSummary:
    summary = RecomputeSummary()
    if not donation_ids:
        return summary

    with ThreadPoolExecutor(max_workers=max(1, workers)) as executor:
        futures = {
            executor.submit(_recompute_one, session_factory, donation_id, source_system): donation_id
            for donation_id in donation_ids
        }
        for future in as_completed(futures):
            donation_id = futures[future]
            try:
                co2e = future.result()
            except (DataIntegrityError, DonationNotFoundError, SQLAlchemyError) as e:
                logger.error("donation_id=%s skipped: %s", donation_id, e)
                summary.failed[donation_id] = str(e)
                continue
            summary.computed += 1
            summary.total_co2e_kg += co2e

    return summary


def run(limit: int = 500, recompute_all: bool = False, workers: int = 4) -> None:
    source_system = DEFAULT_SOURCE_SYSTEM

    with SessionLocal() as db:
        if recompute_all:
            ids = crud.list_donation_ids(db, limit=limit)
        else:
            ids = crud.list_donation_ids_missing_metrics(db, limit=limit)

    if not ids:
        print("No donations to recompute.")
        return

    summary = recompute(ids, source_system, workers=workers)

    print(
        f"Recomputed {summary.computed}/{len(ids)} donations "
        f"(source_system={source_system}). "
        f"total_co2e_kg={summary.total_co2e_kg:.4f}, failed={len(summary.failed)}"
    )


if __name__ == "__main__":
    configure_logging()
    run(
        limit=int(os.getenv("LIMIT", "500")),
        recompute_all=os.getenv("ALL", "") == "1",
        workers=int(os.getenv("WORKERS", "4")),
    )
