from datetime import datetime, timezone

import pytest

from tutorhub.constants import InvoiceStatus
from tutorhub.domain.invoices.repository import InvoiceRepository
from tutorhub.domain.invoices.service import InvoiceService
from tutorhub.shared.errors import DatabaseError, ErrorCodes
from tutorhub.shared.result import failure

SESSION_DATE = datetime(2025, 1, 20, 16, 0, tzinfo=timezone.utc)


@pytest.fixture
def enrolled(factory):
    tutor_class = factory.tutor_class()
    student = factory.user()
    factory.enroll(student, tutor_class)
    return student, tutor_class


def test_paid_invoice_validates(db, factory, enrolled):
    student, tutor_class = enrolled
    factory.invoice(student, tutor_class, period="2025-01", status=InvoiceStatus.PAID)

    result = InvoiceService(db).validate_student_payment(student.id, tutor_class.id, SESSION_DATE)

    assert result.success
    assert result.data is True


def test_issued_invoice_does_not_validate(db, factory, enrolled):
    student, tutor_class = enrolled
    factory.invoice(student, tutor_class, period="2025-01", status=InvoiceStatus.ISSUED)

    result = InvoiceService(db).validate_student_payment(student.id, tutor_class.id, SESSION_DATE)

    assert result.success
    assert result.data is False


def test_missing_invoice_does_not_validate(db, enrolled):
    student, tutor_class = enrolled

    result = InvoiceService(db).validate_student_payment(student.id, tutor_class.id, SESSION_DATE)

    assert result.success
    assert result.data is False


def test_paid_invoice_for_another_month_does_not_validate(db, factory, enrolled):
    student, tutor_class = enrolled
    factory.invoice(student, tutor_class, period="2024-12", status=InvoiceStatus.PAID)

    result = InvoiceService(db).validate_student_payment(student.id, tutor_class.id, SESSION_DATE)

    assert result.data is False


def test_session_date_period_is_taken_in_utc(db, factory, enrolled):
    student, tutor_class = enrolled
    factory.invoice(student, tutor_class, period="2025-02", status=InvoiceStatus.PAID)
    # 31 Jan 20:00 in UTC-5 is already 1 Feb in UTC
    session_date = datetime.fromisoformat("2025-01-31T20:00:00-05:00")

    result = InvoiceService(db).validate_student_payment(student.id, tutor_class.id, session_date)

    assert result.data is True


def test_lookup_failure_is_a_database_error(db, enrolled, monkeypatch):
    student, tutor_class = enrolled
    monkeypatch.setattr(
        InvoiceRepository,
        "get_invoice_by_details",
        staticmethod(lambda *args: failure(DatabaseError("connection reset"))),
    )

    result = InvoiceService(db).validate_student_payment(student.id, tutor_class.id, SESSION_DATE)

    assert not result.success
    assert result.error.code == ErrorCodes.DATABASE_ERROR
