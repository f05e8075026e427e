"""Invoice router - FastAPI endpoints for billing runs and invoice lookups"""

import logging
from typing import Callable, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...cron_security import verify_cron_secret
from ...database import SessionLocal, get_db
from ...rate_limiter import create_rate_limiter
from ...shared.errors import AppError, ErrorCodes
from ...shared.result import Result
from ...shared.validators import PERIOD_PATTERN
from ...utils.date_utils import get_payment_period_from_date
from .schemas import (
    EnrollmentInvoiceRequest,
    GenerationSummary,
    InvoiceResponse,
    PaymentValidationRequest,
    PaymentValidationResponse,
    PayoutSummary,
    TutorInvoiceResponse,
    TutorInvoiceStatusUpdate,
)
from .service import InvoiceService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invoices", tags=["Invoices"])

STATUS_BY_ERROR_CODE = {
    ErrorCodes.NO_RECORDS_FOUND: 404,
    ErrorCodes.VALIDATION_ERROR: 400,
}

enrollment_invoice_limit = create_rate_limiter(prefix="enrollment-invoice")
payment_validation_limit = create_rate_limiter(max_requests=30, prefix="payment-validation")


def get_session_factory() -> Callable[[], Session]:
    """Session factory handed to services that fan work out across threads"""
    return SessionLocal


def get_invoice_service(
    db: Session = Depends(get_db),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
) -> InvoiceService:
    """Dependency injection for InvoiceService"""
    return InvoiceService(db, session_factory=session_factory)


def unwrap(result: Result):
    """Return the result data or raise the matching HTTP error"""
    if result.success:
        return result.data
    error = result.error or AppError("Unknown error")
    raise HTTPException(
        status_code=STATUS_BY_ERROR_CODE.get(error.code, 500),
        detail=error.to_dict(),
    )


# ============================================================================
# SCHEDULED RUNS
# ============================================================================


@router.post(
    "/cron/student-invoices",
    response_model=GenerationSummary,
    dependencies=[Depends(verify_cron_secret)],
)
async def generate_student_invoices(service: InvoiceService = Depends(get_invoice_service)):
    """Generate this month's student invoices (cron or manual admin trigger)"""
    result = service.generate_monthly_student_invoices()
    if not result.success:
        logger.error(f"❌ Error generating student invoices: {result.error!r}")
    return unwrap(result)


@router.post(
    "/cron/tutor-invoices",
    response_model=PayoutSummary,
    dependencies=[Depends(verify_cron_secret)],
)
async def generate_tutor_invoices(service: InvoiceService = Depends(get_invoice_service)):
    """Recompute last month's tutor payouts"""
    result = service.generate_monthly_tutor_invoices()
    if not result.success:
        logger.error(f"❌ Error generating tutor invoices: {result.error!r}")
    return unwrap(result)


# ============================================================================
# STUDENT INVOICES
# ============================================================================


@router.post("/enrollments", response_model=InvoiceResponse)
async def create_enrollment_invoice(
    body: EnrollmentInvoiceRequest,
    service: InvoiceService = Depends(get_invoice_service),
    _: None = Depends(enrollment_invoice_limit),
):
    """Issue the current month's invoice for a newly registered student"""
    return unwrap(service.create_invoice_for_new_enrollment(body.student_id, body.class_id))


@router.get("/students/{student_id}", response_model=list[InvoiceResponse])
async def list_student_invoices(
    student_id: str,
    period: Optional[str] = Query(None, pattern=PERIOD_PATTERN.pattern),
    service: InvoiceService = Depends(get_invoice_service),
):
    return unwrap(service.get_student_invoices(student_id, period))


@router.post("/payment-validation", response_model=PaymentValidationResponse)
async def validate_payment(
    body: PaymentValidationRequest,
    service: InvoiceService = Depends(get_invoice_service),
    _: None = Depends(payment_validation_limit),
):
    """Check whether a student has paid for the month of a session"""
    paid = unwrap(
        service.validate_student_payment(body.student_id, body.class_id, body.session_date)
    )
    return PaymentValidationResponse(
        paid=paid, invoice_period=get_payment_period_from_date(body.session_date)
    )


# ============================================================================
# TUTOR INVOICES
# ============================================================================


@router.get("/tutors/{tutor_id}", response_model=list[TutorInvoiceResponse])
async def list_tutor_invoices(
    tutor_id: str,
    period: Optional[str] = Query(None, pattern=PERIOD_PATTERN.pattern),
    service: InvoiceService = Depends(get_invoice_service),
):
    return unwrap(service.get_tutor_invoices(tutor_id, period))


@router.patch("/tutor-invoices/{invoice_id}/status", response_model=TutorInvoiceResponse)
async def update_tutor_invoice_status(
    invoice_id: str,
    body: TutorInvoiceStatusUpdate,
    service: InvoiceService = Depends(get_invoice_service),
):
    """Record payout proof / mark a tutor invoice as paid"""
    return unwrap(service.update_tutor_invoice_status(invoice_id, body.status, body.payment_url))
