"""
Certificate resolver — turns a descriptor request into a populated descriptor.

The resolver is source-agnostic: it picks the KeystoreBackend registered for
the descriptor's source type and talks to the returned handle only through
the KeystoreHandle port.

  validate descriptor
    → open handle (unless the caller supplied one)
      → select alias (explicit alias, else first enumerated)
        → fetch certificate
          → describe: expiry, serial, issuer/subject CN, taxpayer identity

Every stage returns Result[T]; the first failure short-circuits. Taxpayer
identity extraction is the one stage that never fails the resolution: a
missing or malformed subject alternative name only leaves those fields unset.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from datetime import datetime

import structlog
from cryptography import x509
from pyasn1.error import PyAsn1Error

from icp_cert.adapters.dn_parser import extract_attribute
from icp_cert.adapters.extension_decoder import ExtensionDecoder, extension_value
from icp_cert.domain.models import (
    EXPIRY_SENTINEL,
    CertificateDescriptor,
    SourceType,
    TaxpayerIdentity,
)
from icp_cert.domain.ports import KeystoreBackend, KeystoreHandle
from icp_cert.railway import ErrorCode
from icp_cert.railway.result import Result
from icp_cert.railway.result_failures import ResultFailures

log = structlog.get_logger()

COMMON_NAME = "CN"


def validate_descriptor(descriptor: CertificateDescriptor | None) -> Result[CertificateDescriptor]:
    """
    Check that the descriptor carries exactly the inputs its source type needs.

    FILE_P12 → file_path + password, BYTES_P12 → raw_key_material + password,
    HARDWARE_TOKEN → provider + PIN, OS stores → none of path/bytes/provider.
    """
    if descriptor is None:
        return ResultFailures.invalid_argument("Certificate descriptor is required")
    if not isinstance(descriptor.source_type, SourceType):
        return ResultFailures.invalid_argument(
            f"Unknown source type: {descriptor.source_type!r}"
        )

    populated = {
        "file_path": descriptor.file_path is not None,
        "raw_key_material": descriptor.raw_key_material is not None,
        "provider": descriptor.provider is not None,
    }
    required = {
        SourceType.FILE_P12: "file_path",
        SourceType.BYTES_P12: "raw_key_material",
        SourceType.HARDWARE_TOKEN: "provider",
    }.get(descriptor.source_type)

    if required is not None and not populated[required]:
        return ResultFailures.invalid_argument(
            f"{descriptor.source_type.value} requires {required}"
        )
    extra = [name for name, present in populated.items() if present and name != required]
    if extra:
        return ResultFailures.invalid_argument(
            f"{descriptor.source_type.value} does not accept {', '.join(extra)}"
        )
    if required is not None and descriptor.password is None:
        return ResultFailures.invalid_argument(
            f"{descriptor.source_type.value} requires a password"
        )
    return Result.success(descriptor)


def certificate_expiry(certificate: x509.Certificate) -> datetime:
    """notAfter as an aware datetime, or EXPIRY_SENTINEL when it cannot be read."""
    try:
        return certificate.not_valid_after_utc
    except ValueError:
        return EXPIRY_SENTINEL


class CertificateResolver:
    """
    Resolve certificates from any registered source.

    backends maps each supported SourceType to the KeystoreBackend that
    opens it; a descriptor whose source type has no backend fails with
    UNSUPPORTED_SOURCE_TYPE.
    """

    def __init__(
        self,
        backends: Mapping[SourceType, KeystoreBackend],
        decoder: ExtensionDecoder | None = None,
    ) -> None:
        self._backends = dict(backends)
        self._decoder = decoder or ExtensionDecoder()

    # ─────────────────────── Keystore access ───────────────────────

    def open_keystore(self, descriptor: CertificateDescriptor | None) -> Result[KeystoreHandle]:
        """
        Open a handle for the descriptor's source. The caller owns the handle.

        Returns Result[KeystoreHandle], or the backend's failure
        (INVALID_CREDENTIAL, BACKEND_UNAVAILABLE, ...).
        """
        return validate_descriptor(descriptor).flat_map(
            lambda d: self._backend_for(d.source_type).flat_map(
                lambda backend: backend.open(d)
            )
        )

    def list_aliases(self, descriptor: CertificateDescriptor | None) -> Result[list[str]]:
        """Aliases held by the descriptor's source, without resolving any of them."""
        return self.open_keystore(descriptor).flat_map(self._aliases_and_close)

    def select_alias(
        self, descriptor: CertificateDescriptor, handle: KeystoreHandle
    ) -> Result[str]:
        """The descriptor's alias if set, else the first alias the handle enumerates."""
        if descriptor.alias is not None:
            return Result.success(descriptor.alias)
        return handle.aliases().flat_map(
            lambda aliases: Result.success(aliases[0])
            if aliases
            else Result.failure(
                ErrorCode.CERTIFICATE_NOT_FOUND, "Keystore holds no certificates"
            )
        )

    # ─────────────────────── Resolution ───────────────────────

    def resolve(
        self,
        descriptor: CertificateDescriptor | None,
        handle: KeystoreHandle | None = None,
    ) -> Result[CertificateDescriptor]:
        """
        Populate descriptor from its source.

        When handle is given it is reused and left open; otherwise a handle is
        opened for this call and closed before returning.

        Returns Result[CertificateDescriptor] with a new, fully-populated
        descriptor, or Result.failure with INVALID_ARGUMENT,
        UNSUPPORTED_SOURCE_TYPE, INVALID_CREDENTIAL, BACKEND_UNAVAILABLE,
        PROVIDER_UNAVAILABLE or CERTIFICATE_NOT_FOUND.
        """
        if handle is not None:
            return validate_descriptor(descriptor).flat_map(
                lambda d: self._resolve_with(d, handle)
            )
        return self.open_keystore(descriptor).flat_map(
            lambda opened: self._resolve_and_close(descriptor, opened)
        )

    def describe(
        self,
        descriptor: CertificateDescriptor,
        alias: str,
        certificate: x509.Certificate,
    ) -> CertificateDescriptor:
        """Copy of descriptor with every certificate-derived field filled in."""
        identity = self._taxpayer_identity(alias, certificate)
        return dataclasses.replace(
            descriptor,
            alias=alias,
            certificate=certificate,
            not_after=certificate_expiry(certificate),
            serial_number=certificate.serial_number,
            issuer_cn=extract_attribute(certificate.issuer.rfc4514_string(), COMMON_NAME),
            subject_cn=extract_attribute(certificate.subject.rfc4514_string(), COMMON_NAME),
            tax_id=identity.tax_id,
            individual_tax_id=identity.individual_tax_id,
            individual_name=identity.individual_name,
        )

    def _resolve_and_close(
        self, descriptor: CertificateDescriptor, handle: KeystoreHandle
    ) -> Result[CertificateDescriptor]:
        try:
            return self._resolve_with(descriptor, handle)
        finally:
            handle.close()

    def _resolve_with(
        self, descriptor: CertificateDescriptor, handle: KeystoreHandle
    ) -> Result[CertificateDescriptor]:
        return (
            self.select_alias(descriptor, handle)
            .flat_map(lambda alias: handle.certificate(alias).map(
                lambda certificate: self.describe(descriptor, alias, certificate)
            ))
            .peek(lambda resolved: log.info(
                "resolver.resolved",
                source=resolved.source_type.value,
                alias=resolved.alias,
                serial_number=resolved.serial_number,
                days_remaining=resolved.days_remaining,
            ))
        )

    def _taxpayer_identity(
        self, alias: str, certificate: x509.Certificate
    ) -> TaxpayerIdentity:
        try:
            value = extension_value(certificate)
        except PyAsn1Error as exc:
            log.debug(
                "resolver.taxpayer_identity_unavailable",
                alias=alias,
                reason=f"Certificate extensions could not be parsed: {exc}",
            )
            return TaxpayerIdentity()
        if value is None:
            return TaxpayerIdentity()
        return (
            self._decoder.decode(value)
            .peek_failure(lambda error: log.debug(
                "resolver.taxpayer_identity_unavailable",
                alias=alias,
                reason=error.message,
            ))
            .get_or_else(TaxpayerIdentity())
        )

    def _backend_for(self, source_type: SourceType) -> Result[KeystoreBackend]:
        backend = self._backends.get(source_type)
        if backend is None:
            return ResultFailures.unsupported_source_type(source_type.value)
        return Result.success(backend)

    @staticmethod
    def _aliases_and_close(handle: KeystoreHandle) -> Result[list[str]]:
        try:
            return handle.aliases()
        finally:
            handle.close()
