import logging
import os
import time
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv()

from growth.core.config import settings, validate_config
from growth.core.logging import configure_logging
from growth.core.middleware.request_id import RequestIdMiddleware
from growth.core.middleware.metrics import MetricsMiddleware
from growth.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from growth.api import engagement, health, lead_scores, metrics, realtime

configure_logging(settings.ENV)
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("growth")
    logger.info("Starting growth scoring service...")
    app.state.startup_time = time.time()
    try:
        yield
    finally:
        logger.info("Stopping growth scoring service...")


app = FastAPI(title="Growth - Lead Scoring", lifespan=lifespan)

# Middlewares
app.add_middleware(RequestIdMiddleware)
app.add_middleware(MetricsMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(HTTPException, http_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(lead_scores.router)
app.include_router(engagement.router)
app.include_router(realtime.router, tags=["realtime"])
app.include_router(health.router)
app.include_router(metrics.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("growth.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
