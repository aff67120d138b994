"""
Result type for certificate resolution.

A Result[T] is either Success(value) or Failure(FailureDescription).
Adapters convert platform exceptions into failures where they call the
platform; the resolver, scanner and TLS factory chain their stages with
flat_map(), so the first failing stage decides the outcome:

    open_keystore ──▶ select_alias ──▶ certificate(alias) ──▶ describe
          │                 │                  │
          └─────────────────┴──── Failure ─────┴──────────────▶ Result[T]

Success never carries None. Adapters whose platform call may return None
check it before wrapping (see TokenKeystore) or use from_optional().
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

from icp_cert.railway.failure import ErrorCode, FailureDescription

T = TypeVar("T")
U = TypeVar("U")


class Result(Generic[T]):
    """
    Success(value) or Failure(FailureDescription).

        >>> Result.success(["client"]).map(len).value()
        1
    """

    def is_success(self) -> bool:
        return isinstance(self, Success)

    def is_failure(self) -> bool:
        return isinstance(self, Failure)

    def value(self) -> T:
        """The success value. Raises ValueError on a Failure."""
        match self:
            case Success(v):
                return v
            case Failure(err):
                raise ValueError(f"Cannot get value from a Failure: {err.message}")
        raise TypeError("unreachable")  # pragma: no cover

    def error(self) -> FailureDescription:
        """The failure description. Raises ValueError on a Success."""
        match self:
            case Failure(err):
                return err
            case Success(v):
                raise ValueError(f"Cannot get error from a Success: {v}")
        raise TypeError("unreachable")  # pragma: no cover

    # ──────────────────────── Chaining ────────────────────────

    def map(self, mapper: Callable[[T], U]) -> Result[U]:
        match self:
            case Success(v):
                return Success(mapper(v))
            case Failure(err):
                return Failure(err)
        raise TypeError("unreachable")  # pragma: no cover

    def map_failure(
        self, mapper: Callable[[FailureDescription], FailureDescription]
    ) -> Result[T]:
        """Rewrite the failure description; a Success passes through."""
        match self:
            case Failure(err):
                return Failure(mapper(err))
        return self

    def flat_map(self, mapper: Callable[[T], Result[U]]) -> Result[U]:
        match self:
            case Success(v):
                return mapper(v)
            case Failure(err):
                return Failure(err)
        raise TypeError("unreachable")  # pragma: no cover

    def peek(self, action: Callable[[T], Any]) -> Result[T]:
        """Run action on the success value (logging, slot registration)."""
        match self:
            case Success(v):
                action(v)
        return self

    def peek_failure(self, action: Callable[[FailureDescription], Any]) -> Result[T]:
        match self:
            case Failure(err):
                action(err)
        return self

    def get_or_else(self, default: T) -> T:
        match self:
            case Success(v):
                return v
        return default

    # ──────────────────────── Factories ────────────────────────

    @staticmethod
    def success(value: T) -> Result[T]:
        return Success(value)

    @staticmethod
    def failure(
        code: ErrorCode,
        message: str,
        exception: Optional[BaseException] = None,
    ) -> Result[T]:
        return Failure(FailureDescription(code=code, message=message, exception=exception))

    @staticmethod
    def from_computation(
        computation: Callable[[], T],
        error_code: ErrorCode,
        error_message: str,
    ) -> Result[T]:
        """
        Run computation and capture any exception it raises as a failure.

        computation must not return None.

            Result.from_computation(
                lambda: x509.load_der_x509_certificate(der),
                ErrorCode.BACKEND_UNAVAILABLE,
                "Store returned an unreadable certificate",
            )
        """
        try:
            return Result.success(computation())
        except Exception as e:
            return Result.failure(error_code, error_message, e)

    @staticmethod
    def from_optional(
        value: Optional[T],
        error_message: str,
        error_code: ErrorCode = ErrorCode.INVALID_ARGUMENT,
    ) -> Result[T]:
        if value is not None:
            return Result.success(value)
        return Result.failure(error_code, error_message)

    @staticmethod
    def all_of(results: list[Result[T]]) -> Result[list[T]]:
        """Every value in order, or the first failure."""
        values: list[T] = []
        for r in results:
            match r:
                case Success(v):
                    values.append(v)
                case Failure(err):
                    return Failure(err)
        return Success(values)


@dataclass(frozen=True, slots=True)
class Success(Result[T]):
    _value: T

    def __init__(self, value: T) -> None:
        if value is None:
            raise TypeError("Success value must not be None")
        object.__setattr__(self, "_value", value)

    def __repr__(self) -> str:
        return f"Success({self._value!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Success):
            return self._value == other._value
        return NotImplemented

    def __hash__(self) -> int:
        return hash(("Success", self._value))


Success.__match_args__ = ("_value",)


@dataclass(frozen=True, slots=True)
class Failure(Result[T]):
    _error: FailureDescription

    def __init__(self, error: FailureDescription) -> None:
        if error is None:
            raise TypeError("Failure error must not be None")
        object.__setattr__(self, "_error", error)

    def __repr__(self) -> str:
        return f"Failure({self._error.code.value}: {self._error.message!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Failure):
            return (
                self._error.code == other._error.code
                and self._error.message == other._error.message
            )
        return NotImplemented

    def __hash__(self) -> int:
        return hash(("Failure", self._error.code, self._error.message))


Failure.__match_args__ = ("_error",)
