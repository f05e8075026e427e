"""
Discriminated success/failure result returned by data access and service calls.

Callers check ``result.success`` and early-return on failure instead of
relying on exceptions for expected error paths.
"""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from .errors import AppError

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    success: bool
    data: Optional[T] = None
    error: Optional[AppError] = None


def success(data: Optional[T] = None) -> Result[T]:
    return Result(success=True, data=data)


def failure(error: AppError) -> Result:
    return Result(success=False, error=error)
