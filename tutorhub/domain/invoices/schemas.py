"""Invoice domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from ...constants import TutorInvoiceStatus
from ...shared.validators import validate_uuid


def _require_uuid(v: str) -> str:
    if not validate_uuid(v):
        raise ValueError("must be a valid UUID")
    return v


class GenerationSummary(BaseModel):
    """Outcome of a monthly student invoice run"""

    period: str
    created: int = 0
    skipped_dormant: int = 0  # Enrollments whose class has no upcoming session
    skipped_failed: int = 0  # Enrollments skipped because a per-class lookup failed


class PayoutSummary(BaseModel):
    """Outcome of a monthly tutor payout run"""

    period: str
    created: int = 0
    updated: int = 0
    skipped: int = 0


class InvoiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    student_id: str
    class_id: str
    invoice_no: str
    invoice_period: str
    amount: Decimal
    invoice_date: date
    due_date: date
    status: str
    created_at: Optional[datetime] = None


class TutorInvoiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tutor_id: str
    class_id: str
    payment_period: str
    amount: Decimal
    status: str
    payment_url: Optional[str] = None
    created_at: Optional[datetime] = None


class EnrollmentInvoiceRequest(BaseModel):
    """Schema for issuing an invoice right after registration"""

    student_id: str
    class_id: str

    @field_validator("student_id", "class_id")
    @classmethod
    def validate_ids(cls, v: str) -> str:
        return _require_uuid(v)


class PaymentValidationRequest(BaseModel):
    student_id: str
    class_id: str
    session_date: datetime

    @field_validator("student_id", "class_id")
    @classmethod
    def validate_ids(cls, v: str) -> str:
        return _require_uuid(v)


class PaymentValidationResponse(BaseModel):
    paid: bool
    invoice_period: str


class TutorInvoiceStatusUpdate(BaseModel):
    """Schema for moving a tutor invoice through issued → proof_uploaded → paid"""

    status: str
    payment_url: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        if v not in TutorInvoiceStatus.ALL:
            raise ValueError(f"status must be one of: {', '.join(TutorInvoiceStatus.ALL)}")
        return v
