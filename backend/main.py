"""
SchoolPulse Analytics — period-over-period school analytics.
FastAPI backend entry point.
"""

import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load environment before route modules read their settings
load_dotenv()

from routes.analyze import router as analyze_router, DEFAULT_PERIOD, TREND_THRESHOLD  # noqa: E402

SCHOOL_NAME = os.getenv("SCHOOL_NAME", "My School")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
# Comma-separated allowed origins, e.g. http://localhost:8081,https://app.example.com
raw_origins = os.getenv("CORS_ORIGINS", "http://localhost:8081,http://localhost:19006")
ALLOWED_ORIGINS = [o.strip() for o in raw_origins.split(",") if o.strip()]

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="SchoolPulse Analytics API",
    description=(
        "Attendance, fees, academics, syllabus and timetable analytics — "
        "period-bounded rates, rankings and period-over-period trends."
    ),
    version="1.0.0",
)

# CORS: allow the mobile and web dev clients
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(analyze_router, prefix="/api/analyze", tags=["Analytics"])

logger.info(
    "Analytics API ready (default period=%s, trend threshold=±%s points)",
    DEFAULT_PERIOD, TREND_THRESHOLD,
)


@app.get("/api/health")
async def health_check():
    return {
        "status": "ok",
        "school_name": SCHOOL_NAME,
    }


@app.get("/api/config")
async def get_config():
    """Return server configuration to the client."""
    return {
        "school_name": SCHOOL_NAME,
        "default_period": DEFAULT_PERIOD,
        "trend_threshold": TREND_THRESHOLD,
    }
