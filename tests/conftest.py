import os

# Must be set before tutorhub modules read their configuration
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("DB_LOG_SLOW_QUERIES", "false")
os.environ.pop("REDIS_URL", None)

from datetime import datetime, timedelta, timezone  # noqa: E402
from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from tutorhub import models, models_invoice  # noqa: E402,F401
from tutorhub.constants import ClassStatus, InvoiceStatus, UserRole  # noqa: E402
from tutorhub.database import Base  # noqa: E402
from tutorhub.models import ClassSession, Enrollment, TutorClass, User  # noqa: E402
from tutorhub.models_invoice import Invoice  # noqa: E402
from tutorhub.rate_limiter import memory_store  # noqa: E402
from tutorhub.utils.date_utils import get_invoice_period_utc  # noqa: E402

# Fixed reference time for service calls: mid-January 2025, UTC
NOW = datetime(2025, 1, 10, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def reset_rate_limits():
    memory_store.clear()
    yield
    memory_store.clear()


class BillingFactory:
    """Builds users, classes, enrollments, sessions and invoices"""

    def __init__(self, db):
        self.db = db
        self._seq = 0

    def _next(self) -> int:
        self._seq += 1
        return self._seq

    def user(self, role: str = UserRole.STUDENT) -> User:
        n = self._next()
        user = User(email=f"{role}{n}@example.com", full_name=f"{role.title()} {n}", role=role)
        self.db.add(user)
        self.db.commit()
        return user

    def tutor_class(self, tutor=None, fee="5000", status=ClassStatus.ACTIVE) -> TutorClass:
        tutor = tutor or self.user(UserRole.TUTOR)
        tutor_class = TutorClass(
            tutor_id=tutor.id,
            name=f"Class {self._next()}",
            fee=Decimal(fee) if fee is not None else None,
            status=status,
        )
        self.db.add(tutor_class)
        self.db.commit()
        return tutor_class

    def enroll(self, student, tutor_class) -> Enrollment:
        enrollment = Enrollment(student_id=student.id, class_id=tutor_class.id)
        self.db.add(enrollment)
        self.db.commit()
        return enrollment

    def session(self, tutor_class, start_time: datetime) -> ClassSession:
        class_session = ClassSession(
            class_id=tutor_class.id,
            start_time=start_time,
            end_time=start_time + timedelta(hours=1),
        )
        self.db.add(class_session)
        self.db.commit()
        return class_session

    def upcoming_session(self, tutor_class, now: datetime = NOW) -> ClassSession:
        return self.session(tutor_class, now + timedelta(days=3))

    def invoice(
        self, student, tutor_class, period=None, status=InvoiceStatus.ISSUED, amount="5000"
    ) -> Invoice:
        period = period or get_invoice_period_utc(NOW)
        year, month = (int(part) for part in period.split("-"))
        invoice = Invoice(
            student_id=student.id,
            class_id=tutor_class.id,
            invoice_no=f"{period}-T{self._next():07d}",
            invoice_period=period,
            amount=Decimal(amount),
            invoice_date=datetime(year, month, 1).date(),
            due_date=datetime(year, month, 15).date(),
            status=status,
        )
        self.db.add(invoice)
        self.db.commit()
        return invoice


@pytest.fixture
def factory(db):
    return BillingFactory(db)
