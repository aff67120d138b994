"""
Failure description — structured error information for the failure track.

Every fallible operation in icp_cert returns a Result whose failure side
carries one of the ErrorCode kinds below. Callers branch on the code to
decide whether to retry (bad credential, store temporarily unreachable),
reconfigure (unsupported source type) or give up.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, unique
from typing import Optional


@unique
class ErrorCode(Enum):
    """Error kinds surfaced by certificate resolution and mutual-TLS setup."""

    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    """Missing or inconsistent input (caller bug, not retryable)."""

    INVALID_CREDENTIAL = "INVALID_CREDENTIAL"
    """Wrong keystore password or token PIN (retry with corrected input)."""

    CERTIFICATE_NOT_FOUND = "CERTIFICATE_NOT_FOUND"
    """The alias or certificate being resolved does not exist in the source."""

    KEY_UNAVAILABLE = "KEY_UNAVAILABLE"
    """The source holds no exportable private key for the alias."""

    BACKEND_UNAVAILABLE = "BACKEND_UNAVAILABLE"
    """Keystore file, OS store or keychain could not be read (may be transient)."""

    PROVIDER_UNAVAILABLE = "PROVIDER_UNAVAILABLE"
    """Hardware token module or session unreachable (may be transient)."""

    BUFFER_OUT_OF_RANGE = "BUFFER_OUT_OF_RANGE"
    """Extension decoding walked past the end of the extension bytes."""

    UNSUPPORTED_SOURCE_TYPE = "UNSUPPORTED_SOURCE_TYPE"
    """No keystore backend is registered for the requested source type."""

    TLS_SETUP_ERROR = "TLS_SETUP_ERROR"
    """Building the mutual-TLS context failed."""

    @property
    def retryable(self) -> bool:
        """Whether repeating the operation (possibly with corrected input) can succeed."""
        return self in _RETRYABLE


_RETRYABLE = frozenset(
    {
        ErrorCode.INVALID_CREDENTIAL,
        ErrorCode.BACKEND_UNAVAILABLE,
        ErrorCode.PROVIDER_UNAVAILABLE,
    }
)


@dataclass(frozen=True, slots=True)
class FailureDescription:
    """
    Immutable failure descriptor: error code, message, optional cause and timestamp.

    >>> desc = FailureDescription(ErrorCode.INVALID_ARGUMENT, "Password is required")
    >>> desc.code
    <ErrorCode.INVALID_ARGUMENT: 'INVALID_ARGUMENT'>
    """

    code: ErrorCode
    message: str
    exception: Optional[BaseException] = field(default=None, repr=False)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
