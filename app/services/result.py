from dataclasses import dataclass, field
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass
class Result(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    reason: Optional[str] = None
    details: dict = field(default_factory=dict)

    @staticmethod
    def success(value: T) -> "Result[T]":
        return Result(ok=True, value=value)

    @staticmethod
    def failure(reason: str, error: Optional[str] = None, **details) -> "Result[T]":
        return Result(ok=False, error=error or reason, reason=reason, details=details)

    def unwrap_or(self, default: T) -> T:
        return self.value if self.ok else default
