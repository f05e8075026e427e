"""Application error taxonomy shared by repositories and services"""


class ErrorCodes:
    DATABASE_ERROR = "DATABASE_ERROR"
    NO_RECORDS_FOUND = "NO_RECORDS_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    SERVICE_LEVEL_ERROR = "SERVICE_LEVEL_ERROR"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


class AppError(Exception):
    """Business-level failure carrying a typed error code"""

    def __init__(self, message: str, code: str = ErrorCodes.INTERNAL_SERVER_ERROR):
        super().__init__(message)
        self.message = message
        self.code = code

    def to_dict(self) -> dict:
        return {"message": self.message, "code": self.code}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


class DatabaseError(AppError):
    """Read/write failure against the store"""

    def __init__(self, message: str):
        super().__init__(message, ErrorCodes.DATABASE_ERROR)


class NotFoundError(AppError):
    def __init__(self, message: str):
        super().__init__(message, ErrorCodes.NO_RECORDS_FOUND)


class ValidationError(AppError):
    def __init__(self, message: str):
        super().__init__(message, ErrorCodes.VALIDATION_ERROR)
