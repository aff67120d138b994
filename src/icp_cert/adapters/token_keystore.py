"""
Hardware token adapter — keystore access through a TokenProvider session.

Adapter layer — implements the KeystoreBackend port for HARDWARE_TOKEN
descriptors. The PKCS#11 binding itself lives with the platform integration
and is reached through the TokenProvider / TokenSession ports; this module
turns its exceptions into Result failures:

  - an incorrect PIN while opening the session → INVALID_CREDENTIAL
  - any other error while opening → PROVIDER_UNAVAILABLE
  - errors while reading an opened session → PROVIDER_UNAVAILABLE
  - a label the token does not hold → CERTIFICATE_NOT_FOUND
  - a key the token will not export → KEY_UNAVAILABLE
"""

from __future__ import annotations

import structlog
from cryptography import x509

from icp_cert.domain.models import CertificateDescriptor, KeyMaterial, SourceType
from icp_cert.domain.ports import KeystoreHandle, TokenSession
from icp_cert.railway import ErrorCode
from icp_cert.railway.result import Result
from icp_cert.railway.result_failures import ResultFailures

log = structlog.get_logger()

# Matched case-insensitively against the provider's error text and type name.
INCORRECT_PIN_MARKERS = (
    "ckr_pin_incorrect",
    "pinincorrect",
    "pin_incorrect",
    "incorrect pin",
    "pin incorrect",
    "password was incorrect",
    "password incorrect",
)
NON_EXPORTABLE_KEY = "the token does not export this private key"


def is_incorrect_pin(exc: BaseException) -> bool:
    text = f"{type(exc).__name__} {exc}".lower()
    return any(marker in text for marker in INCORRECT_PIN_MARKERS)


class TokenKeystore:
    """KeystoreHandle over an open TokenSession."""

    def __init__(self, session: TokenSession) -> None:
        self._session = session

    def aliases(self) -> Result[list[str]]:
        return Result.from_computation(
            lambda: list(self._session.labels()),
            ErrorCode.PROVIDER_UNAVAILABLE,
            "Cannot enumerate token objects",
        )

    def certificate(self, alias: str) -> Result[x509.Certificate]:
        try:
            certificate = self._session.certificate(alias)
        except Exception as exc:
            return ResultFailures.provider_unavailable(
                f"Cannot read certificate {alias} from token", exc
            )
        if certificate is None:
            return ResultFailures.certificate_not_found(alias)
        return Result.success(certificate)

    def private_key(self, alias: str) -> Result[KeyMaterial]:
        try:
            material = self._session.private_key(alias)
        except Exception as exc:
            return ResultFailures.provider_unavailable(
                f"Cannot read private key {alias} from token", exc
            )
        if material is None:
            return ResultFailures.key_unavailable(alias, NON_EXPORTABLE_KEY)
        return Result.success(material)

    def close(self) -> None:
        self._session.close()


class HardwareTokenBackend:
    """
    Open a session on the token carried by the descriptor, using its password as PIN.

    Implements the KeystoreBackend port for HARDWARE_TOKEN descriptors.
    """

    def open(self, descriptor: CertificateDescriptor) -> Result[KeystoreHandle]:
        provider = descriptor.provider
        if provider is None:
            return ResultFailures.invalid_argument("HARDWARE_TOKEN requires a token provider")
        if descriptor.password is None:
            return ResultFailures.invalid_argument("HARDWARE_TOKEN requires a PIN")
        try:
            session = provider.open_session(descriptor.password)
        except Exception as exc:
            if is_incorrect_pin(exc):
                return ResultFailures.invalid_credential("Token PIN was incorrect", exc)
            return ResultFailures.provider_unavailable(
                f"Cannot open token session: {exc}", exc
            )
        log.info("keystore.opened", source=SourceType.HARDWARE_TOKEN.value)
        return Result.success(TokenKeystore(session))
