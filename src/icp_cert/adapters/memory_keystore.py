"""
In-memory keystore handle shared by the PKCS#12 and OS-store backends.

Both sources are read completely when opened, so the handle is just an
ordered alias → entry mapping. Entries without a private key (OS stores)
answer private_key() with KEY_UNAVAILABLE.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes
from cryptography.x509.oid import NameOID

from icp_cert.domain.models import KeyMaterial
from icp_cert.railway.result import Result
from icp_cert.railway.result_failures import ResultFailures


@dataclass(frozen=True, slots=True)
class KeystoreEntry:
    certificate: x509.Certificate
    private_key: PrivateKeyTypes | None = field(default=None, repr=False)
    chain: tuple[x509.Certificate, ...] = ()


def default_alias(certificate: x509.Certificate) -> str:
    """Subject CN, or the SHA-1 fingerprint in hex when the subject has no CN."""
    names = certificate.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    if names:
        value = names[0].value
        return value if isinstance(value, str) else value.decode("utf-8", "replace")
    return certificate.fingerprint(hashes.SHA1()).hex()


def unique_alias(alias: str, taken: Iterable[str]) -> str:
    """alias, or alias suffixed " (2)", " (3)", ... when already taken."""
    taken = set(taken)
    if alias not in taken:
        return alias
    counter = 2
    while f"{alias} ({counter})" in taken:
        counter += 1
    return f"{alias} ({counter})"


class MemoryKeystore:
    """
    KeystoreHandle over entries already loaded into memory.

    key_unavailable_reason is reported when an entry has no private key.
    """

    def __init__(
        self,
        entries: dict[str, KeystoreEntry],
        key_unavailable_reason: str = "no private key stored for this alias",
    ) -> None:
        self._entries = dict(entries)
        self._key_unavailable_reason = key_unavailable_reason

    @classmethod
    def from_certificates(
        cls,
        certificates: Iterable[x509.Certificate],
        key_unavailable_reason: str,
    ) -> MemoryKeystore:
        entries: dict[str, KeystoreEntry] = {}
        for certificate in certificates:
            alias = unique_alias(default_alias(certificate), entries)
            entries[alias] = KeystoreEntry(certificate)
        return cls(entries, key_unavailable_reason)

    def aliases(self) -> Result[list[str]]:
        return Result.success(list(self._entries))

    def certificate(self, alias: str) -> Result[x509.Certificate]:
        entry = self._entries.get(alias)
        if entry is None:
            return ResultFailures.certificate_not_found(alias)
        return Result.success(entry.certificate)

    def private_key(self, alias: str) -> Result[KeyMaterial]:
        entry = self._entries.get(alias)
        if entry is None:
            return ResultFailures.certificate_not_found(alias)
        if entry.private_key is None:
            return ResultFailures.key_unavailable(alias, self._key_unavailable_reason)
        return Result.success(
            KeyMaterial(entry.private_key, entry.certificate, entry.chain)
        )

    def close(self) -> None:
        self._entries.clear()
