# donation_carbon/main.py
# ---------------------------------------------------------
# ENTRY POINT of the FastAPI application.
#
# 1) Configure logging
# 2) Create the FastAPI app
# 3) Create database tables (dev only; production uses migrations)
# 4) Attach API routes
#
# Run with:
#   uvicorn donation_carbon.main:app --reload
# ---------------------------------------------------------

from fastapi import FastAPI

import donation_carbon.models  # noqa: F401  registers tables on Base.metadata
from donation_carbon.config import configure_logging
from donation_carbon.db import Base, engine
from donation_carbon.routes import router

configure_logging()

app = FastAPI(
    title="Donation Carbon API",
    version="0.1.0",
    description="CO2e estimates for donated surplus food, traced from dishes to reference emission factors",
)

Base.metadata.create_all(bind=engine)

app.include_router(router)


@app.get("/health")
def health():
    return {"status": "ok"}
