"""
Manual billing run
Usage: python run_invoice_jobs.py <students|tutors>
"""

import logging
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent))

from tutorhub.database import SessionLocal
from tutorhub.domain.invoices.service import InvoiceService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)

JOBS = {
    "students": lambda service: service.generate_monthly_student_invoices(),
    "tutors": lambda service: service.generate_monthly_tutor_invoices(),
}


def run_job(name: str) -> int:
    db = SessionLocal()
    try:
        result = JOBS[name](InvoiceService(db, session_factory=SessionLocal))
    finally:
        db.close()

    if not result.success:
        logger.error(f"❌ {name} run failed: {result.error!r}")
        return 1

    logger.info(f"✅ {name} run complete: {result.data.model_dump()}")
    return 0


if __name__ == "__main__":
    if len(sys.argv) != 2 or sys.argv[1] not in JOBS:
        logger.error("Usage: python run_invoice_jobs.py <students|tutors>")
        sys.exit(1)

    sys.exit(run_job(sys.argv[1]))
