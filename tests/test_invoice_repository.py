from decimal import Decimal
from types import SimpleNamespace

from tutorhub.constants import InvoiceStatus
from tutorhub.domain.invoices import service as service_module
from tutorhub.domain.invoices.repository import InvoiceRepository, TutorInvoiceRepository
from tutorhub.domain.invoices.service import InvoiceService
from tutorhub.models_invoice import Invoice
from tutorhub.shared.errors import ErrorCodes

from .conftest import NOW


class MySQLSession:
    """Session stand-in bound to a dialect without ON CONFLICT support"""

    def __init__(self):
        self.rolled_back = False

    def get_bind(self):
        return SimpleNamespace(dialect=SimpleNamespace(name="mysql"))

    def rollback(self):
        self.rolled_back = True


def test_unsupported_dialect_is_reported_as_database_error():
    db = MySQLSession()
    row = {"id": "x", "invoice_period": "2025-01"}

    student_result = InvoiceRepository.create_invoices(db, [row])
    tutor_result = TutorInvoiceRepository.create_tutor_invoices(db, [row])

    assert student_result.error.code == ErrorCodes.DATABASE_ERROR
    assert tutor_result.error.code == ErrorCodes.DATABASE_ERROR
    assert db.rolled_back


def test_invoice_number_clash_is_renumbered(db, factory, monkeypatch):
    tutor_class = factory.tutor_class(fee="5000")
    factory.upcoming_session(tutor_class)
    taken_no = factory.invoice(factory.user(), tutor_class).invoice_no
    newcomer = factory.user()
    factory.enroll(newcomer, tutor_class)
    monkeypatch.setattr(service_module, "generate_invoice_no", lambda period: taken_no)

    result = InvoiceService(db).generate_monthly_student_invoices(now=NOW)

    assert result.success
    assert result.data.created == 1
    invoice = db.query(Invoice).filter(Invoice.student_id == newcomer.id).one()
    assert invoice.invoice_no != taken_no
    assert invoice.invoice_no.startswith("2025-01-")
    assert invoice.amount == Decimal("5000")


def test_rows_already_invoiced_stay_skipped_after_renumbering(db, factory):
    tutor_class = factory.tutor_class()
    student = factory.user()
    factory.invoice(student, tutor_class, status=InvoiceStatus.PAID)
    row = InvoiceService.build_invoice_row(student.id, tutor_class.id, Decimal("5000"), NOW)

    result = InvoiceRepository.create_invoices(db, [row])

    assert result.success
    assert result.data == 0
    assert db.query(Invoice).filter(Invoice.student_id == student.id).count() == 1
