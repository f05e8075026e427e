"""Invoice service - Monthly student invoicing and tutor payout calculation"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from ...config import INVOICE_INSERT_BATCH_SIZE, PAYOUT_MAX_WORKERS, TUTOR_PAYOUT_RATE
from ...constants import InvoiceStatus, TutorInvoiceStatus
from ...models import generate_uuid
from ...models_invoice import Invoice, TutorInvoice
from ...shared.errors import AppError, ErrorCodes, NotFoundError, ValidationError
from ...shared.result import Result, failure, success
from ...shared.validators import validate_period
from ...utils.date_utils import (
    generate_invoice_no,
    get_due_date_utc,
    get_full_date_utc,
    get_invoice_period_utc,
    get_payment_period_from_date,
    get_previous_payment_period,
    parse_iso_date,
    to_utc,
)
from ..classes.repository import ActiveClass, ClassRepository
from .repository import InvoiceRepository, TutorInvoiceRepository
from .schemas import GenerationSummary, PayoutSummary

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


@dataclass(frozen=True)
class PayoutLookup:
    """Per-class inputs to a tutor payout"""

    active_class: ActiveClass
    existing_invoice_id: Optional[str]
    paid_count: int


class InvoiceService:
    """
    Service layer for billing runs.

    Built once per request or job with the session it should use. Tutor payout
    lookups fan out over ``max_workers`` threads when a ``session_factory`` is
    given; each thread opens its own session from it.
    """

    def __init__(
        self,
        db: Session,
        session_factory: Optional[Callable[[], Session]] = None,
        payout_rate: Decimal = TUTOR_PAYOUT_RATE,
        max_workers: int = PAYOUT_MAX_WORKERS,
        batch_size: int = INVOICE_INSERT_BATCH_SIZE,
    ):
        self.db = db
        self.session_factory = session_factory
        self.payout_rate = Decimal(str(payout_rate))
        self.max_workers = max(1, max_workers)
        self.batch_size = batch_size
        self.repo = InvoiceRepository()
        self.tutor_repo = TutorInvoiceRepository()
        self.class_repo = ClassRepository()

    # ========================================================================
    # STUDENT INVOICES
    # ========================================================================

    @staticmethod
    def build_invoice_row(
        student_id: str, class_id: str, amount: Optional[Decimal], now: datetime
    ) -> dict[str, Any]:
        """Invoice row for the billing period containing ``now``"""
        invoice_period = get_invoice_period_utc(now)
        return {
            "id": generate_uuid(),
            "student_id": student_id,
            "class_id": class_id,
            "invoice_no": generate_invoice_no(invoice_period),
            "invoice_period": invoice_period,
            "amount": Decimal(amount) if amount is not None else Decimal("0"),
            "invoice_date": parse_iso_date(get_full_date_utc(now)),
            "due_date": parse_iso_date(get_due_date_utc(now)),
            "status": InvoiceStatus.ISSUED,
        }

    def generate_monthly_student_invoices(
        self, now: Optional[datetime] = None
    ) -> Result[GenerationSummary]:
        """
        Issue one invoice per enrollment for the current period.

        Enrollments already invoiced this period are left alone, and classes
        without any upcoming session are treated as dormant and skipped.
        Re-running within the same period creates nothing new.
        """
        try:
            now = to_utc(now)
            invoice_period = get_invoice_period_utc(now)
            logger.info(f"🧾 Starting monthly student invoice generation for {invoice_period}")

            enrollments_result = self.class_repo.get_all_enrollments_with_class(self.db)
            if not enrollments_result.success:
                return failure(AppError("Failed to fetch enrollments.", ErrorCodes.DATABASE_ERROR))

            existing_result = self.repo.get_invoices_by_period(self.db, invoice_period)
            if not existing_result.success:
                return failure(
                    AppError("Failed to fetch existing invoices.", ErrorCodes.DATABASE_ERROR)
                )

            invoiced = {(inv.student_id, inv.class_id) for inv in existing_result.data}
            summary = GenerationSummary(period=invoice_period)
            class_has_sessions: dict[str, Optional[bool]] = {}
            invoices_to_insert = []

            for enrollment in enrollments_result.data:
                if (enrollment.student_id, enrollment.class_id) in invoiced:
                    continue

                if enrollment.class_id not in class_has_sessions:
                    sessions_result = self.class_repo.has_upcoming_sessions(
                        self.db, enrollment.class_id, now
                    )
                    if sessions_result.success:
                        class_has_sessions[enrollment.class_id] = sessions_result.data
                    else:
                        logger.warning(
                            f"⚠️ Skipping class {enrollment.class_id}: session lookup failed"
                        )
                        class_has_sessions[enrollment.class_id] = None

                has_sessions = class_has_sessions[enrollment.class_id]
                if has_sessions is None:
                    summary.skipped_failed += 1
                    continue
                if not has_sessions:
                    summary.skipped_dormant += 1
                    continue

                invoices_to_insert.append(
                    self.build_invoice_row(
                        enrollment.student_id, enrollment.class_id, enrollment.fee, now
                    )
                )
                invoiced.add((enrollment.student_id, enrollment.class_id))

            if not invoices_to_insert:
                logger.info("ℹ️ No new invoices needed to be generated.")
                return success(summary)

            create_result = self.repo.create_invoices(self.db, invoices_to_insert, self.batch_size)
            if not create_result.success:
                return failure(AppError("Failed to create invoices.", ErrorCodes.DATABASE_ERROR))

            summary.created = create_result.data
            logger.info(
                f"✅ Created {summary.created} new invoices for period {invoice_period} "
                f"(dormant: {summary.skipped_dormant}, failed lookups: {summary.skipped_failed})"
            )
            return success(summary)

        except Exception as e:
            logger.error(f"❌ Something went wrong while generating monthly student invoices: {str(e)}")
            return failure(
                AppError(
                    "Something went wrong while generating the monthly student invoices",
                    ErrorCodes.SERVICE_LEVEL_ERROR,
                )
            )

    def create_invoice_for_new_enrollment(
        self, student_id: str, class_id: str, now: Optional[datetime] = None
    ) -> Result[Invoice]:
        """Issue the current period's invoice at registration time, or return the existing one"""
        try:
            now = to_utc(now)
            invoice_period = get_invoice_period_utc(now)

            existing_result = self.repo.get_invoice_by_details(
                self.db, student_id, class_id, invoice_period
            )
            if not existing_result.success:
                return failure(
                    AppError("Failed to check for existing invoice.", ErrorCodes.DATABASE_ERROR)
                )
            if existing_result.data:
                logger.info(
                    f"ℹ️ Invoice already exists for student {student_id} in class {class_id} ({invoice_period})"
                )
                return success(existing_result.data)

            fee_result = self.class_repo.get_class_fee_by_id(self.db, class_id)
            if not fee_result.success:
                return failure(AppError("Failed to retrieve class fee.", ErrorCodes.DATABASE_ERROR))
            if fee_result.data is None:
                return failure(
                    AppError(f"No fee configured for class {class_id}.", ErrorCodes.DATABASE_ERROR)
                )

            row = self.build_invoice_row(student_id, class_id, fee_result.data, now)
            create_result = self.repo.create_single_invoice(self.db, row)
            if not create_result.success:
                # A concurrent registration may have inserted the same (student, class, period)
                raced = self.repo.get_invoice_by_details(self.db, student_id, class_id, invoice_period)
                if raced.success and raced.data:
                    return success(raced.data)
                return failure(AppError("Failed to create new invoice.", ErrorCodes.DATABASE_ERROR))

            logger.info(f"✅ Created invoice {create_result.data.invoice_no} for new enrollment")
            return success(create_result.data)

        except Exception as e:
            logger.error(f"❌ Unexpected error creating invoice for new enrollment: {str(e)}")
            return failure(AppError("An unexpected error occurred.", ErrorCodes.INTERNAL_SERVER_ERROR))

    def validate_student_payment(
        self, student_id: str, class_id: str, session_date: datetime
    ) -> Result[bool]:
        """Whether the student has a paid invoice for the period containing ``session_date``"""
        try:
            invoice_period = get_payment_period_from_date(session_date)
            invoice_result = self.repo.get_invoice_by_details(
                self.db, student_id, class_id, invoice_period
            )
            if not invoice_result.success:
                logger.error(
                    f"❌ Failed to retrieve invoice for payment validation "
                    f"(student {student_id}, class {class_id}, {invoice_period})"
                )
                return failure(
                    AppError("Failed to retrieve invoice for validation.", ErrorCodes.DATABASE_ERROR)
                )

            invoice = invoice_result.data
            if not invoice or invoice.status != InvoiceStatus.PAID:
                logger.warning(
                    f"⚠️ Payment validation failed for student {student_id}, class {class_id}, "
                    f"{invoice_period}: invoice not found or not paid"
                )
                return success(False)

            logger.info(f"✅ Payment validated for student {student_id}, class {class_id}, {invoice_period}")
            return success(True)

        except Exception as e:
            logger.error(f"❌ Unexpected error during payment validation: {str(e)}")
            return failure(
                AppError(
                    "An unexpected error occurred during payment validation.",
                    ErrorCodes.INTERNAL_SERVER_ERROR,
                )
            )

    def get_student_invoices(
        self, student_id: str, invoice_period: Optional[str] = None
    ) -> Result[list[Invoice]]:
        if invoice_period is not None and not validate_period(invoice_period):
            return failure(ValidationError("period must be formatted as YYYY-MM"))
        return self.repo.get_invoices_for_student(self.db, student_id, invoice_period)

    # ========================================================================
    # TUTOR PAYOUTS
    # ========================================================================

    def calculate_tutor_payout(self, paid_count: int, class_fee: Optional[Decimal]) -> Decimal:
        """paid invoices × class fee × payout rate, rounded to cents"""
        fee = Decimal(class_fee) if class_fee is not None else Decimal("0")
        return (Decimal(paid_count) * fee * self.payout_rate).quantize(CENTS, rounding=ROUND_HALF_UP)

    def _lookup_payout(self, db: Session, active_class: ActiveClass, period: str) -> Result[PayoutLookup]:
        existing_result = self.tutor_repo.get_tutor_invoice_by_details(
            db, active_class.tutor_id, active_class.class_id, period
        )
        if not existing_result.success:
            return failure(existing_result.error)

        paid_result = self.repo.count_paid_invoices(db, active_class.class_id, period)
        if not paid_result.success:
            return failure(paid_result.error)

        existing = existing_result.data
        return success(
            PayoutLookup(
                active_class=active_class,
                existing_invoice_id=existing.id if existing else None,
                paid_count=paid_result.data,
            )
        )

    def _lookup_payout_in_own_session(self, active_class: ActiveClass, period: str) -> Result[PayoutLookup]:
        db = self.session_factory()
        try:
            return self._lookup_payout(db, active_class, period)
        finally:
            db.close()

    def _lookup_payouts(self, classes: list[ActiveClass], period: str) -> list[Result[PayoutLookup]]:
        """Run per-class lookups, in parallel when a session factory is available"""
        if self.session_factory is None or self.max_workers == 1 or len(classes) < 2:
            return [self._lookup_payout(self.db, active_class, period) for active_class in classes]

        workers = min(self.max_workers, len(classes))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="payout") as pool:
            return list(
                pool.map(lambda c: self._lookup_payout_in_own_session(c, period), classes)
            )

    def generate_monthly_tutor_invoices(self, now: Optional[datetime] = None) -> Result[PayoutSummary]:
        """
        Compute last month's payout for every active class.

        Amounts are recomputed from the paid student invoice count on every run,
        so re-running after late payment verifications corrects the figures
        instead of adding to them.
        """
        try:
            payment_period = get_previous_payment_period(now)
            logger.info(f"💸 Starting tutor payout calculation for {payment_period}")

            classes_result = self.class_repo.get_active_classes(self.db)
            if not classes_result.success:
                return failure(AppError("Failed to fetch active classes.", ErrorCodes.DATABASE_ERROR))

            summary = PayoutSummary(period=payment_period)
            invoices_to_insert = []

            for lookup_result in self._lookup_payouts(classes_result.data, payment_period):
                if not lookup_result.success:
                    logger.error(f"❌ Skipping class during payout run: {lookup_result.error.message}")
                    summary.skipped += 1
                    continue

                lookup = lookup_result.data
                active_class = lookup.active_class
                amount = self.calculate_tutor_payout(lookup.paid_count, active_class.fee)

                if lookup.existing_invoice_id:
                    update_result = self.tutor_repo.update_tutor_invoice_amount(
                        self.db, lookup.existing_invoice_id, amount
                    )
                    if not update_result.success:
                        logger.error(
                            f"❌ Skipping class {active_class.class_id}: could not update tutor invoice"
                        )
                        summary.skipped += 1
                        continue
                    summary.updated += 1
                    continue

                invoices_to_insert.append(
                    {
                        "id": generate_uuid(),
                        "tutor_id": active_class.tutor_id,
                        "class_id": active_class.class_id,
                        "payment_period": payment_period,
                        "amount": amount,
                        "status": TutorInvoiceStatus.ISSUED,
                        "payment_url": None,
                    }
                )

            if invoices_to_insert:
                create_result = self.tutor_repo.create_tutor_invoices(
                    self.db, invoices_to_insert, self.batch_size
                )
                if not create_result.success:
                    return failure(
                        AppError("Failed to create tutor invoices.", ErrorCodes.DATABASE_ERROR)
                    )
                summary.created = len(invoices_to_insert)

            logger.info(
                f"✅ Tutor payouts for {payment_period}: created {summary.created}, "
                f"updated {summary.updated}, skipped {summary.skipped}"
            )
            return success(summary)

        except Exception as e:
            logger.error(f"❌ Something went wrong while generating monthly tutor invoices: {str(e)}")
            return failure(
                AppError(
                    "Something went wrong while generating the monthly tutor invoices",
                    ErrorCodes.SERVICE_LEVEL_ERROR,
                )
            )

    def get_tutor_invoices(
        self, tutor_id: str, payment_period: Optional[str] = None
    ) -> Result[list[TutorInvoice]]:
        if payment_period is not None and not validate_period(payment_period):
            return failure(ValidationError("period must be formatted as YYYY-MM"))
        return self.tutor_repo.get_tutor_invoices_by_tutor_id(self.db, tutor_id, payment_period)

    def update_tutor_invoice_status(
        self, invoice_id: str, status: str, payment_url: Optional[str] = None
    ) -> Result[TutorInvoice]:
        """Move a tutor invoice to a new status; an uploaded payment proof URL is kept"""
        if status not in TutorInvoiceStatus.ALL:
            return failure(ValidationError(f"Unknown tutor invoice status: {status}"))

        invoice_result = self.tutor_repo.get_tutor_invoice_by_id(self.db, invoice_id)
        if not invoice_result.success:
            return failure(invoice_result.error)
        if invoice_result.data is None:
            return failure(NotFoundError("Tutor invoice not found."))

        result = self.tutor_repo.update_tutor_invoice_status(
            self.db, invoice_result.data, status, payment_url
        )
        if result.success:
            logger.info(f"✅ Tutor invoice {invoice_id} status updated to {status}")
        return result
