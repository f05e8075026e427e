"""Class repository - Read-only queries over classes, enrollments and sessions"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...constants import ClassStatus
from ...models import ClassSession, Enrollment, TutorClass
from ...shared.errors import DatabaseError, NotFoundError
from ...shared.result import Result, failure, success
from ...utils.date_utils import to_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnrollmentWithClass:
    student_id: str
    class_id: str
    class_name: str
    fee: Optional[Decimal]


@dataclass(frozen=True)
class ActiveClass:
    class_id: str
    tutor_id: str
    class_name: str
    fee: Optional[Decimal]


class ClassRepository:
    """Repository for class-management tables consumed by billing"""

    @staticmethod
    def get_all_enrollments_with_class(db: Session) -> Result[list[EnrollmentWithClass]]:
        """Get every (student, class) enrollment together with the class fee"""
        try:
            rows = (
                db.query(
                    Enrollment.student_id,
                    Enrollment.class_id,
                    TutorClass.name,
                    TutorClass.fee,
                )
                .join(TutorClass, TutorClass.id == Enrollment.class_id)
                .order_by(Enrollment.class_id, Enrollment.student_id)
                .all()
            )
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"❌ Error fetching enrollments with class details: {e}")
            return failure(DatabaseError("Error fetching enrollments with class details."))

        return success(
            [
                EnrollmentWithClass(
                    student_id=student_id, class_id=class_id, class_name=name, fee=fee
                )
                for student_id, class_id, name, fee in rows
            ]
        )

    @staticmethod
    def has_upcoming_sessions(
        db: Session, class_id: str, now: Optional[datetime] = None
    ) -> Result[bool]:
        """Whether the class has at least one session starting after ``now``"""
        try:
            upcoming = (
                db.query(ClassSession.id)
                .filter(ClassSession.class_id == class_id, ClassSession.start_time > to_utc(now))
                .first()
            )
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"❌ Failed to check session availability for class {class_id}: {e}")
            return failure(DatabaseError(f"Error fetching sessions for class {class_id}."))

        return success(upcoming is not None)

    @staticmethod
    def get_class_fee_by_id(db: Session, class_id: str) -> Result[Optional[Decimal]]:
        """Get the configured fee of a class (None when not configured)"""
        try:
            row = db.query(TutorClass.fee).filter(TutorClass.id == class_id).first()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"❌ Error fetching fee for class {class_id}: {e}")
            return failure(DatabaseError("Error fetching class fee."))

        if row is None:
            return failure(NotFoundError(f"Class {class_id} not found."))

        return success(row[0])

    @staticmethod
    def get_active_classes(db: Session) -> Result[list[ActiveClass]]:
        """Get all active classes, grouped by tutor"""
        try:
            rows = (
                db.query(TutorClass.id, TutorClass.tutor_id, TutorClass.name, TutorClass.fee)
                .filter(TutorClass.status == ClassStatus.ACTIVE)
                .order_by(TutorClass.tutor_id, TutorClass.id)
                .all()
            )
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"❌ Error fetching active classes: {e}")
            return failure(DatabaseError("Error fetching active classes."))

        return success(
            [
                ActiveClass(class_id=class_id, tutor_id=tutor_id, class_name=name, fee=fee)
                for class_id, tutor_id, name, fee in rows
            ]
        )
