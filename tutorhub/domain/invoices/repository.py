"""Invoice repository - Database operations for student and tutor invoices"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import INVOICE_INSERT_BATCH_SIZE
from ...constants import InvoiceStatus
from ...models_invoice import Invoice, TutorInvoice
from ...shared.errors import DatabaseError
from ...shared.result import Result, failure, success
from ...utils.date_utils import generate_invoice_no

logger = logging.getLogger(__name__)

TUTOR_INVOICE_UNIQUE_KEY = ("tutor_id", "class_id", "payment_period")


@dataclass(frozen=True)
class InvoiceKey:
    id: str
    student_id: str
    class_id: str
    invoice_period: str


def _upsert_insert(db: Session, model):
    """INSERT construct supporting ON CONFLICT for the bound dialect"""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise DatabaseError(f"Conflict-tolerant inserts are not supported on {dialect}.")


def _chunks(rows: list, size: int):
    size = max(1, size)
    for start in range(0, len(rows), size):
        yield rows[start : start + size]


class InvoiceRepository:
    """Repository for student invoice database operations"""

    @staticmethod
    def get_invoices_by_period(db: Session, invoice_period: str) -> Result[list[InvoiceKey]]:
        """Get the (student, class) keys of every invoice already issued for a period"""
        try:
            rows = (
                db.query(Invoice.id, Invoice.student_id, Invoice.class_id, Invoice.invoice_period)
                .filter(Invoice.invoice_period == invoice_period)
                .all()
            )
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"❌ Error fetching existing invoices for period {invoice_period}: {e}")
            return failure(DatabaseError("Error fetching existing invoices for period."))

        return success([InvoiceKey(*row) for row in rows])

    @staticmethod
    def get_invoice_by_details(
        db: Session, student_id: str, class_id: str, invoice_period: str
    ) -> Result[Optional[Invoice]]:
        """Get the invoice for a student, class and period if one exists"""
        try:
            invoice = (
                db.query(Invoice)
                .filter(
                    Invoice.student_id == student_id,
                    Invoice.class_id == class_id,
                    Invoice.invoice_period == invoice_period,
                )
                .first()
            )
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"❌ Error fetching existing invoice by details: {e}")
            return failure(DatabaseError("Error fetching existing invoice by details."))

        return success(invoice)

    @staticmethod
    def get_invoices_for_student(
        db: Session, student_id: str, invoice_period: Optional[str] = None
    ) -> Result[list[Invoice]]:
        """Get a student's invoices, newest period first"""
        try:
            query = db.query(Invoice).filter(Invoice.student_id == student_id)
            if invoice_period:
                query = query.filter(Invoice.invoice_period == invoice_period)
            invoices = query.order_by(Invoice.invoice_period.desc(), Invoice.invoice_no).all()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"❌ Error fetching invoices for student {student_id}: {e}")
            return failure(DatabaseError("Error fetching student invoices."))

        return success(invoices)

    @staticmethod
    def count_paid_invoices(db: Session, class_id: str, invoice_period: str) -> Result[int]:
        """Count student invoices marked paid for a class and period"""
        try:
            count = (
                db.query(func.count(Invoice.id))
                .filter(
                    Invoice.class_id == class_id,
                    Invoice.invoice_period == invoice_period,
                    Invoice.status == InvoiceStatus.PAID,
                )
                .scalar()
            )
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"❌ Error counting paid invoices for class {class_id}: {e}")
            return failure(DatabaseError("Error counting paid invoices."))

        return success(count or 0)

    @staticmethod
    def _insert_ignoring_conflicts(db: Session, rows: list[dict[str, Any]]) -> set[str]:
        """Insert rows, dropping any that violate a unique constraint; returns the inserted ids"""
        stmt = _upsert_insert(db, Invoice).values(rows).on_conflict_do_nothing().returning(Invoice.id)
        return set(db.execute(stmt).scalars().all())

    @staticmethod
    def create_invoices(
        db: Session,
        invoices: list[dict[str, Any]],
        batch_size: int = INVOICE_INSERT_BATCH_SIZE,
    ) -> Result[int]:
        """
        Bulk insert invoice rows, skipping any that collide with an existing
        (student, class, period) invoice.

        A row dropped because its random invoice number is already taken is
        retried once with a fresh number. Rows are written in chunks, each
        committed on its own. Returns the number of rows actually inserted.
        """
        if not invoices:
            return success(0)

        created = 0
        try:
            for chunk in _chunks(invoices, batch_size):
                inserted = InvoiceRepository._insert_ignoring_conflicts(db, chunk)
                renumbered = [
                    {**row, "invoice_no": generate_invoice_no(row["invoice_period"])}
                    for row in chunk
                    if row["id"] not in inserted
                ]
                if renumbered:
                    # Rows already invoiced for the period conflict again and stay skipped
                    inserted |= InvoiceRepository._insert_ignoring_conflicts(db, renumbered)
                created += len(inserted)
                db.commit()
        except (SQLAlchemyError, DatabaseError) as e:
            db.rollback()
            logger.error(f"❌ Error inserting invoices (inserted {created} before failure): {e}")
            return failure(DatabaseError("Error inserting invoices."))

        return success(created)

    @staticmethod
    def create_single_invoice(db: Session, invoice_data: dict[str, Any]) -> Result[Invoice]:
        """Insert one invoice and return the stored record"""
        try:
            invoice = Invoice(**invoice_data)
            db.add(invoice)
            db.commit()
            db.refresh(invoice)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"❌ Error creating single invoice: {e}")
            return failure(DatabaseError("Error creating single invoice."))

        return success(invoice)


class TutorInvoiceRepository:
    """Repository for tutor payout invoices"""

    @staticmethod
    def get_tutor_invoice_by_details(
        db: Session, tutor_id: str, class_id: str, payment_period: str
    ) -> Result[Optional[TutorInvoice]]:
        try:
            invoice = (
                db.query(TutorInvoice)
                .filter(
                    TutorInvoice.tutor_id == tutor_id,
                    TutorInvoice.class_id == class_id,
                    TutorInvoice.payment_period == payment_period,
                )
                .first()
            )
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"❌ Error fetching existing tutor invoice: {e}")
            return failure(DatabaseError("Error fetching existing tutor invoice."))

        return success(invoice)

    @staticmethod
    def get_tutor_invoice_by_id(db: Session, invoice_id: str) -> Result[Optional[TutorInvoice]]:
        try:
            invoice = db.query(TutorInvoice).filter(TutorInvoice.id == invoice_id).first()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"❌ Error fetching tutor invoice {invoice_id}: {e}")
            return failure(DatabaseError("Error fetching tutor invoice."))

        return success(invoice)

    @staticmethod
    def get_tutor_invoices_by_tutor_id(
        db: Session, tutor_id: str, payment_period: Optional[str] = None
    ) -> Result[list[TutorInvoice]]:
        try:
            query = db.query(TutorInvoice).filter(TutorInvoice.tutor_id == tutor_id)
            if payment_period:
                query = query.filter(TutorInvoice.payment_period == payment_period)
            invoices = query.order_by(
                TutorInvoice.payment_period.desc(), TutorInvoice.class_id
            ).all()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"❌ Error fetching tutor invoices for tutor {tutor_id}: {e}")
            return failure(DatabaseError("Error fetching tutor invoices."))

        return success(invoices)

    @staticmethod
    def create_tutor_invoices(
        db: Session,
        invoices: list[dict[str, Any]],
        batch_size: int = INVOICE_INSERT_BATCH_SIZE,
    ) -> Result[int]:
        """
        Bulk insert tutor invoices. A row that collides with an existing
        (tutor, class, period) invoice overwrites that invoice's amount instead.
        """
        if not invoices:
            return success(0)

        written = 0
        try:
            for chunk in _chunks(invoices, batch_size):
                stmt = _upsert_insert(db, TutorInvoice).values(chunk)
                stmt = stmt.on_conflict_do_update(
                    index_elements=list(TUTOR_INVOICE_UNIQUE_KEY),
                    set_={"amount": stmt.excluded.amount, "updated_at": func.now()},
                ).returning(TutorInvoice.id)
                written += len(db.execute(stmt).all())
                db.commit()
        except (SQLAlchemyError, DatabaseError) as e:
            db.rollback()
            logger.error(f"❌ Error inserting tutor invoices: {e}")
            return failure(DatabaseError("Error inserting tutor invoices."))

        return success(written)

    @staticmethod
    def update_tutor_invoice_amount(db: Session, invoice_id: str, amount: Decimal) -> Result[None]:
        try:
            db.query(TutorInvoice).filter(TutorInvoice.id == invoice_id).update(
                {TutorInvoice.amount: amount}, synchronize_session="fetch"
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"❌ Error updating tutor invoice {invoice_id} amount to {amount}: {e}")
            return failure(DatabaseError("Error updating tutor invoice."))

        return success(None)

    @staticmethod
    def update_tutor_invoice_status(
        db: Session, invoice: TutorInvoice, status: str, payment_url: Optional[str] = None
    ) -> Result[TutorInvoice]:
        try:
            invoice.status = status
            if payment_url is not None:
                invoice.payment_url = payment_url
            db.commit()
            db.refresh(invoice)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"❌ Error updating status of tutor invoice {invoice.id}: {e}")
            return failure(DatabaseError("Error updating tutor invoice status."))

        return success(invoice)
