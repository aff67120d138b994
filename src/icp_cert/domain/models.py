"""
Domain models — immutable value objects for certificate resolution.

A CertificateDescriptor starts life as a *request*: the source type plus the
credential material for that source (file path, PKCS#12 bytes or token
provider, and the password/PIN). CertificateResolver returns a new,
fully-populated descriptor built with dataclasses.replace(); the request is
never mutated and the result is read-only for downstream consumers.

Validity is day-granular and always derived from `not_after` against the
current local calendar date, so `days_remaining` and `is_valid` can never
drift from the expiry they describe.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum, unique
from pathlib import Path
from typing import TYPE_CHECKING

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes

if TYPE_CHECKING:
    from icp_cert.domain.ports import TokenProvider

DEFAULT_TLS_PROTOCOL = "TLSv1.2"

# Expiry assumed for certificates that carry no notAfter (local midnight).
EXPIRY_SENTINEL = datetime(2020, 1, 1).astimezone()


@unique
class SourceType(Enum):
    """Where a certificate and its key live."""

    FILE_P12 = "FILE_P12"
    BYTES_P12 = "BYTES_P12"
    OS_STORE_WINDOWS = "OS_STORE_WINDOWS"
    OS_STORE_MAC = "OS_STORE_MAC"
    HARDWARE_TOKEN = "HARDWARE_TOKEN"

    @property
    def is_os_store(self) -> bool:
        return self in (SourceType.OS_STORE_WINDOWS, SourceType.OS_STORE_MAC)


@dataclass(frozen=True, slots=True)
class TaxpayerIdentity:
    """
    Taxpayer data recovered from the subject alternative name extension.

    tax_id is the corporate (14-digit) ID when present, otherwise an
    individual (11-digit) ID. individual_tax_id and individual_name describe
    the natural person responsible for the certificate.
    """

    tax_id: str | None = None
    individual_tax_id: str | None = None
    individual_name: str | None = None


@dataclass(frozen=True, slots=True)
class KeyMaterial:
    """Private key plus certificate chain, as needed to present a client certificate."""

    private_key: PrivateKeyTypes = field(repr=False)
    certificate: x509.Certificate
    chain: tuple[x509.Certificate, ...] = ()


@dataclass(frozen=True, slots=True)
class CertificateDescriptor:
    """
    Normalized view of one certificate, whatever its source.

    Build requests through the per-source constructors (from_pfx_file,
    from_pfx_bytes, windows_store, mac_store, hardware_token). Fields after
    `concurrency_mode` are populated by CertificateResolver.
    """

    source_type: SourceType
    alias: str | None = None
    file_path: Path | None = None
    raw_key_material: bytes | None = field(default=None, repr=False)
    password: str | None = field(default=None, repr=False)
    provider: TokenProvider | None = field(default=None, repr=False)
    tls_protocol_version: str = DEFAULT_TLS_PROTOCOL
    concurrency_mode: bool = False

    not_after: datetime | None = None
    serial_number: int | None = None
    issuer_cn: str | None = None
    subject_cn: str | None = None
    tax_id: str | None = None
    individual_tax_id: str | None = None
    individual_name: str | None = None
    certificate: x509.Certificate | None = field(default=None, repr=False)

    # ─────────────────────── Per-source constructors ───────────────────────

    @classmethod
    def from_pfx_file(
        cls,
        file_path: str | Path,
        password: str,
        *,
        tls_protocol_version: str = DEFAULT_TLS_PROTOCOL,
        concurrency_mode: bool = False,
    ) -> CertificateDescriptor:
        return cls(
            source_type=SourceType.FILE_P12,
            file_path=Path(file_path),
            password=password,
            tls_protocol_version=tls_protocol_version,
            concurrency_mode=concurrency_mode,
        )

    @classmethod
    def from_pfx_bytes(
        cls,
        data: bytes,
        password: str,
        *,
        tls_protocol_version: str = DEFAULT_TLS_PROTOCOL,
        concurrency_mode: bool = False,
    ) -> CertificateDescriptor:
        return cls(
            source_type=SourceType.BYTES_P12,
            raw_key_material=data,
            password=password,
            tls_protocol_version=tls_protocol_version,
            concurrency_mode=concurrency_mode,
        )

    @classmethod
    def windows_store(
        cls,
        alias: str | None = None,
        *,
        tls_protocol_version: str = DEFAULT_TLS_PROTOCOL,
        concurrency_mode: bool = False,
    ) -> CertificateDescriptor:
        return cls(
            source_type=SourceType.OS_STORE_WINDOWS,
            alias=alias,
            tls_protocol_version=tls_protocol_version,
            concurrency_mode=concurrency_mode,
        )

    @classmethod
    def mac_store(
        cls,
        alias: str | None = None,
        *,
        tls_protocol_version: str = DEFAULT_TLS_PROTOCOL,
        concurrency_mode: bool = False,
    ) -> CertificateDescriptor:
        return cls(
            source_type=SourceType.OS_STORE_MAC,
            alias=alias,
            tls_protocol_version=tls_protocol_version,
            concurrency_mode=concurrency_mode,
        )

    @classmethod
    def hardware_token(
        cls,
        password: str,
        provider: TokenProvider,
        *,
        alias: str | None = None,
        tls_protocol_version: str = DEFAULT_TLS_PROTOCOL,
        concurrency_mode: bool = False,
    ) -> CertificateDescriptor:
        return cls(
            source_type=SourceType.HARDWARE_TOKEN,
            alias=alias,
            password=password,
            provider=provider,
            tls_protocol_version=tls_protocol_version,
            concurrency_mode=concurrency_mode,
        )

    # ─────────────────────── Derived validity ───────────────────────

    @property
    def is_resolved(self) -> bool:
        return self.not_after is not None

    @property
    def expiry_date(self) -> date | None:
        """Local calendar date on which the certificate expires."""
        if self.not_after is None:
            return None
        return self.not_after.astimezone().date()

    def days_remaining_on(self, today: date) -> int | None:
        expiry = self.expiry_date
        if expiry is None:
            return None
        return (expiry - today).days

    def is_valid_on(self, today: date) -> bool:
        expiry = self.expiry_date
        return expiry is not None and today < expiry

    @property
    def days_remaining(self) -> int | None:
        """Whole days until expiry; negative once expired."""
        return self.days_remaining_on(date.today())

    @property
    def is_valid(self) -> bool:
        return self.is_valid_on(date.today())
