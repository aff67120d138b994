"""
Railway-Oriented Programming primitives used across icp_cert.

    from icp_cert.railway import ErrorCode, Result

    def require_password(password: str | None) -> Result[str]:
        return Result.from_optional(password, "Password is required")
"""

from icp_cert.railway.assertions import ResultAssertions
from icp_cert.railway.failure import ErrorCode, FailureDescription
from icp_cert.railway.result import Failure, Result, Success
from icp_cert.railway.result_failures import ResultFailures

__all__ = [
    "Result",
    "Success",
    "Failure",
    "ErrorCode",
    "FailureDescription",
    "ResultFailures",
    "ResultAssertions",
]
