"""
FastAPI application entrypoint.

Run locally:  uvicorn chkin.main:app --reload
"""

import logging

from fastapi import FastAPI

from chkin.api.routes import router
from chkin.config import settings

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(levelname)s | %(name)s | %(message)s",
)

app = FastAPI(
    title="Chkin Consent Lifecycle API",
    description=(
        "Consent status, expiry and renewal for patient form submissions: "
        "access decisions, renewal history, expiry warnings and auto-renewal."
    ),
    version="1.0.0",
)

app.include_router(router, prefix="/api/v1")
