import uuid

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .constants import ClassStatus, UserRole
from .database import Base


def generate_uuid():
    """Generate a UUID primary key"""
    return str(uuid.uuid4())


class User(Base):
    """Platform account; students and tutors share this table"""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False, default=UserRole.STUDENT)  # student, tutor, admin
    created_at = Column(DateTime, server_default=func.now())

    classes = relationship("TutorClass", back_populates="tutor")
    enrollments = relationship("Enrollment", back_populates="student")


class TutorClass(Base):
    """A class owned by a tutor. Read-only from the billing side."""

    __tablename__ = "classes"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tutor_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    fee = Column(Numeric(12, 2), nullable=True)  # Monthly fee; NULL means not configured yet
    status = Column(String(20), nullable=False, default=ClassStatus.ACTIVE)  # active, inactive
    created_at = Column(DateTime, server_default=func.now())

    tutor = relationship("User", back_populates="classes")
    enrollments = relationship("Enrollment", back_populates="tutor_class")
    sessions = relationship("ClassSession", back_populates="tutor_class")


class Enrollment(Base):
    """Links a student to a class"""

    __tablename__ = "student_class_enrollments"
    __table_args__ = (
        UniqueConstraint("student_id", "class_id", name="uq_enrollment_student_class"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    student_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    class_id = Column(String(36), ForeignKey("classes.id"), nullable=False, index=True)
    enrolled_date = Column(DateTime, server_default=func.now())

    student = relationship("User", back_populates="enrollments")
    tutor_class = relationship("TutorClass", back_populates="enrollments")


class ClassSession(Base):
    """A scheduled meeting of a class"""

    __tablename__ = "sessions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    class_id = Column(String(36), ForeignKey("classes.id"), nullable=False, index=True)
    start_time = Column(DateTime(timezone=True), nullable=False, index=True)
    end_time = Column(DateTime(timezone=True), nullable=True)

    tutor_class = relationship("TutorClass", back_populates="sessions")
