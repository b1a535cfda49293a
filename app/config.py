import json
import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./tutoring.db")

# Scheduling rules
# Wall-clock timezone in which business hours and slot grids are evaluated
SCHEDULING_TIMEZONE = os.getenv("SCHEDULING_TIMEZONE", "Europe/Oslo")

# Optional JSON override of the business-hour table, e.g.
# {"weekdays": ["08:00", "20:00"], "saturday": ["09:00", "18:00"], "sunday": ["10:00", "18:00"]}
# Individual day names ("monday", "friday", ...) take precedence over "weekdays".
_business_hours_raw = os.getenv("BUSINESS_HOURS")
BUSINESS_HOURS = json.loads(_business_hours_raw) if _business_hours_raw else None

SLOT_INTERVAL_MINUTES = int(os.getenv("SLOT_INTERVAL_MINUTES", "30"))
MIN_ADVANCE_NOTICE_HOURS = float(os.getenv("MIN_ADVANCE_NOTICE_HOURS", "2"))
MAX_RECURRING_OCCURRENCES = int(os.getenv("MAX_RECURRING_OCCURRENCES", "52"))
READINESS_WINDOW_HOURS = float(os.getenv("READINESS_WINDOW_HOURS", "24"))

# What "mark not complete" does to a WAITING_TO_COMPLETE appointment: "cancel" or "revert"
MARK_NOT_COMPLETE_POLICY = os.getenv("MARK_NOT_COMPLETE_POLICY", "cancel").lower()

# Comma-separated ISO dates on which no appointment may be booked
HOLIDAYS = [d.strip() for d in os.getenv("HOLIDAYS", "").split(",") if d.strip()]

DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "NOK")

# Rate limiting for booking requests
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
BOOKING_RATE_LIMIT = int(os.getenv("BOOKING_RATE_LIMIT", "30"))
BOOKING_RATE_WINDOW_SECONDS = int(os.getenv("BOOKING_RATE_WINDOW_SECONDS", "3600"))

# Shared secret the conversation service sends in X-Service-Key when linking chats
SERVICE_API_KEY = os.getenv("SERVICE_API_KEY", "")
