"""
PKCS#12 adapters — keystores read from a .pfx/.p12 file or from bytes.

Adapter layer — implements the KeystoreBackend port for FILE_P12 and
BYTES_P12 descriptors using cryptography's pkcs12 loader.

cryptography reports a wrong password and a damaged file with the same
ValueError. To tell them apart, the data is checked against the PFX
structure with pyasn1: well-formed PFX that fails to open means the
password was wrong (INVALID_CREDENTIAL); anything else is unreadable key
material (BACKEND_UNAVAILABLE). A PBE scheme cryptography cannot decrypt is
also reported as that ValueError, so it surfaces as INVALID_CREDENTIAL too.
"""

from __future__ import annotations

from pathlib import Path

import structlog
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.serialization import pkcs12
from pyasn1.codec.ber import decoder as ber_decoder
from pyasn1.error import PyAsn1Error
from pyasn1_modules import rfc7292

from icp_cert.adapters.memory_keystore import (
    KeystoreEntry,
    MemoryKeystore,
    default_alias,
    unique_alias,
)
from icp_cert.domain.models import CertificateDescriptor, SourceType
from icp_cert.domain.ports import KeystoreHandle
from icp_cert.railway.result import Result
from icp_cert.railway.result_failures import ResultFailures

log = structlog.get_logger()

PFX_VERSION = 3
WRONG_PASSWORD_MESSAGE = "Keystore password was incorrect"


def is_pfx_structure(data: bytes) -> bool:
    """True when data parses as a version 3 PFX, regardless of password."""
    try:
        pfx, _ = ber_decoder.decode(data, asn1Spec=rfc7292.PFX())
    except PyAsn1Error:
        return False
    return int(pfx["version"]) == PFX_VERSION


def _password_bytes(password: str | None) -> bytes | None:
    return password.encode("utf-8") if password is not None else None


def _entries(loaded: pkcs12.PKCS12KeyAndCertificates) -> dict[str, KeystoreEntry]:
    entries: dict[str, KeystoreEntry] = {}
    chain = tuple(extra.certificate for extra in loaded.additional_certs)
    if loaded.cert is not None:
        certificate = loaded.cert.certificate
        friendly = loaded.cert.friendly_name
        alias = friendly.decode("utf-8", "replace") if friendly else default_alias(certificate)
        entries[alias] = KeystoreEntry(certificate, loaded.key, chain)
        return entries
    # Certificate-only container: every bag becomes a trusted-certificate entry.
    for extra in loaded.additional_certs:
        friendly = extra.friendly_name
        alias = (
            friendly.decode("utf-8", "replace")
            if friendly
            else default_alias(extra.certificate)
        )
        entries[unique_alias(alias, entries)] = KeystoreEntry(extra.certificate)
    return entries


def load_pkcs12_keystore(data: bytes, password: str | None) -> Result[KeystoreHandle]:
    """
    Open PKCS#12 data into an in-memory keystore.

    Returns Result[KeystoreHandle] on success,
    Result.failure(INVALID_CREDENTIAL, ...) when well-formed PKCS#12 data
    cannot be decrypted with the password, or
    Result.failure(BACKEND_UNAVAILABLE, ...) when the data is not PKCS#12 or
    the backend raises UnsupportedAlgorithm.
    """
    try:
        loaded = pkcs12.load_pkcs12(data, _password_bytes(password))
    except ValueError as exc:
        if is_pfx_structure(data):
            return ResultFailures.invalid_credential(WRONG_PASSWORD_MESSAGE, exc)
        return ResultFailures.backend_unavailable("Unreadable PKCS#12 key material", exc)
    except UnsupportedAlgorithm as exc:
        return ResultFailures.backend_unavailable(f"Unsupported PKCS#12 algorithm: {exc}", exc)
    except Exception as exc:
        return ResultFailures.backend_unavailable(f"Cannot open PKCS#12 key material: {exc}", exc)
    return Result.success(MemoryKeystore(_entries(loaded)))


class Pkcs12FileBackend:
    """
    Open PKCS#12 keystores from the filesystem.

    Implements the KeystoreBackend port for FILE_P12 descriptors.
    """

    def open(self, descriptor: CertificateDescriptor) -> Result[KeystoreHandle]:
        return (
            Result.from_optional(descriptor.file_path, "FILE_P12 requires a file path")
            .flat_map(self._read)
            .flat_map(lambda data: load_pkcs12_keystore(data, descriptor.password))
            .peek(lambda _: log.info(
                "keystore.opened",
                source=SourceType.FILE_P12.value,
                path=str(descriptor.file_path),
            ))
        )

    @staticmethod
    def _read(path: Path) -> Result[bytes]:
        try:
            return Result.success(Path(path).read_bytes())
        except OSError as exc:
            return ResultFailures.backend_unavailable(f"Cannot read keystore file: {path}", exc)


class Pkcs12BytesBackend:
    """
    Open PKCS#12 keystores held in memory.

    Implements the KeystoreBackend port for BYTES_P12 descriptors.
    """

    def open(self, descriptor: CertificateDescriptor) -> Result[KeystoreHandle]:
        return (
            Result.from_optional(
                descriptor.raw_key_material, "BYTES_P12 requires raw key material"
            )
            .flat_map(lambda data: load_pkcs12_keystore(data, descriptor.password))
            .peek(lambda _: log.info(
                "keystore.opened",
                source=SourceType.BYTES_P12.value,
                size=len(descriptor.raw_key_material or b""),
            ))
        )
