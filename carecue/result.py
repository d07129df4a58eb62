from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

from shared.contracts.enums import ErrorCode


T = TypeVar("T")


@dataclass(frozen=True)
class AppError:
    code: ErrorCode
    message: str
    details: Any = None

    @property
    def kind(self) -> str:
        return self.code.kind


@dataclass(frozen=True)
class Result(Generic[T]):
    """Explicit success/failure value returned by every public engine operation."""

    ok: bool
    value: Optional[T] = None
    error: Optional[AppError] = None

    def unwrap(self) -> T:
        if not self.ok:
            raise RuntimeError(f"unwrap called on failed result: {self.error}")
        return self.value  # type: ignore[return-value]


def ok(value: T = None) -> Result[T]:  # type: ignore[assignment]
    return Result(ok=True, value=value)


def err(code: ErrorCode, message: str, details: Any = None) -> Result[Any]:
    return Result(ok=False, error=AppError(code=code, message=message, details=details))
