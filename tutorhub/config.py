import os
from decimal import Decimal
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./tutorhub.db")

# Redis (rate limiting + ARQ worker)
REDIS_URL = os.getenv("REDIS_URL")

# Shared secret for cron-triggered endpoints (Authorization: Bearer <CRON_SECRET>)
CRON_SECRET = os.getenv("CRON_SECRET")
if not CRON_SECRET:
    import warnings

    warnings.warn(
        "CRON_SECRET not set! Cron invoice endpoints will reject every request",
        RuntimeWarning,
        stacklevel=2,
    )

# Billing
# Fraction of collected student fees paid out to the tutor (platform keeps the rest)
TUTOR_PAYOUT_RATE = Decimal(os.getenv("TUTOR_PAYOUT_RATE", "0.85"))
# Day of the invoice month on which student invoices fall due
INVOICE_DUE_DAY = int(os.getenv("INVOICE_DUE_DAY", "15"))
# Max rows per INSERT statement when generating invoices in bulk
INVOICE_INSERT_BATCH_SIZE = int(os.getenv("INVOICE_INSERT_BATCH_SIZE", "200"))
# Parallel per-class lookups during tutor payout calculation (1 = sequential)
PAYOUT_MAX_WORKERS = int(os.getenv("PAYOUT_MAX_WORKERS", "4"))

# Worker schedule (UTC). Student invoices run on the 1st, tutor payouts on an offset day
# so the payment verification flow has time to mark student invoices as paid.
TUTOR_INVOICE_DAY = int(os.getenv("TUTOR_INVOICE_DAY", "5"))

# Rate limiting defaults for public billing endpoints
RATE_LIMIT_MAX_REQUESTS = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "5"))
RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))

# Frontend base URL for CORS
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")
