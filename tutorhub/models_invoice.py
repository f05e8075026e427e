"""
Invoice models for monthly student billing and tutor payouts
"""

from sqlalchemy import Column, Date, DateTime, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.sql import func

from .constants import InvoiceStatus, TutorInvoiceStatus
from .database import Base
from .models import generate_uuid


class Invoice(Base):
    """Student-facing invoice; at most one per student, class and billing period"""

    __tablename__ = "invoices"
    __table_args__ = (
        UniqueConstraint(
            "student_id", "class_id", "invoice_period", name="uq_invoice_student_class_period"
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    student_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    class_id = Column(String(36), ForeignKey("classes.id"), nullable=False, index=True)

    invoice_no = Column(String(50), unique=True, nullable=False, index=True)
    invoice_period = Column(String(7), nullable=False, index=True)  # YYYY-MM (UTC)
    amount = Column(Numeric(12, 2), nullable=False)

    invoice_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)

    # issued, paid, rejected - paid/rejected are set by the payment verification flow
    status = Column(String(20), nullable=False, default=InvoiceStatus.ISSUED)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class TutorInvoice(Base):
    """Monthly payout owed to a tutor for one class"""

    __tablename__ = "tutor_invoices"
    __table_args__ = (
        UniqueConstraint(
            "tutor_id", "class_id", "payment_period", name="uq_tutor_invoice_tutor_class_period"
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tutor_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    class_id = Column(String(36), ForeignKey("classes.id"), nullable=False, index=True)

    payment_period = Column(String(7), nullable=False, index=True)  # YYYY-MM (UTC)
    # Recomputed from the paid student invoice count on every run, never incremented
    amount = Column(Numeric(12, 2), nullable=False)

    status = Column(String(20), nullable=False, default=TutorInvoiceStatus.ISSUED)
    payment_url = Column(String(500), nullable=True)  # Uploaded payout proof

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
