"""Status and role vocabularies stored as plain strings in the database"""


class UserRole:
    STUDENT = "student"
    TUTOR = "tutor"
    ADMIN = "admin"


class ClassStatus:
    ACTIVE = "active"
    INACTIVE = "inactive"


class InvoiceStatus:
    ISSUED = "issued"
    PAID = "paid"
    REJECTED = "rejected"

    ALL = (ISSUED, PAID, REJECTED)


class TutorInvoiceStatus:
    ISSUED = "issued"
    PROOF_UPLOADED = "proof_uploaded"
    PAID = "paid"

    ALL = (ISSUED, PROOF_UPLOADED, PAID)
