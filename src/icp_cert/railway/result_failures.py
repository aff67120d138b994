"""
Convenience factories for the failures raised across icp_cert.

    ResultFailures.invalid_credential("Keystore password is incorrect")
    # instead of
    Result.failure(ErrorCode.INVALID_CREDENTIAL, "Keystore password is incorrect")
"""

from __future__ import annotations

from icp_cert.railway.failure import ErrorCode
from icp_cert.railway.result import Result


class ResultFailures:
    """One factory per error kind."""

    @staticmethod
    def invalid_argument(message: str) -> Result:
        return Result.failure(ErrorCode.INVALID_ARGUMENT, message)

    @staticmethod
    def invalid_credential(message: str, exception: BaseException | None = None) -> Result:
        return Result.failure(ErrorCode.INVALID_CREDENTIAL, message, exception)

    @staticmethod
    def certificate_not_found(alias: str) -> Result:
        return Result.failure(
            ErrorCode.CERTIFICATE_NOT_FOUND,
            f"Certificate not found for alias: {alias}",
        )

    @staticmethod
    def key_unavailable(alias: str, reason: str) -> Result:
        return Result.failure(
            ErrorCode.KEY_UNAVAILABLE,
            f"Private key for alias {alias} is unavailable: {reason}",
        )

    @staticmethod
    def backend_unavailable(message: str, exception: BaseException | None = None) -> Result:
        return Result.failure(ErrorCode.BACKEND_UNAVAILABLE, message, exception)

    @staticmethod
    def provider_unavailable(message: str, exception: BaseException | None = None) -> Result:
        return Result.failure(ErrorCode.PROVIDER_UNAVAILABLE, message, exception)

    @staticmethod
    def unsupported_source_type(source_type: object) -> Result:
        return Result.failure(
            ErrorCode.UNSUPPORTED_SOURCE_TYPE,
            f"No keystore backend configured for source type: {source_type}",
        )

    @staticmethod
    def tls_setup_error(message: str, exception: BaseException | None = None) -> Result:
        return Result.failure(ErrorCode.TLS_SETUP_ERROR, message, exception)
