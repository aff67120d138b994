"""
Operating-system certificate store adapters.

Adapter layer — implements the KeystoreBackend port for OS_STORE_WINDOWS and
OS_STORE_MAC descriptors. No password is involved: the platform mediates
access to its own store.

  - Windows: ssl.enum_certificates() over a named system store ("MY" holds
    the user's personal certificates).
  - macOS: `security find-certificate -a -p`, optionally against a specific
    keychain file.

Both stores keep private keys inside the operating system, so handles from
these backends serve certificates only; private_key() reports
KEY_UNAVAILABLE. The enumeration function and the command runner are
injectable so either backend can be exercised on any platform.
"""

from __future__ import annotations

import ssl
import subprocess
from collections.abc import Callable, Iterable
from typing import Any

import structlog
from cryptography import x509

from icp_cert.adapters.memory_keystore import MemoryKeystore
from icp_cert.domain.models import CertificateDescriptor, SourceType
from icp_cert.domain.ports import KeystoreHandle
from icp_cert.railway import ErrorCode
from icp_cert.railway.result import Result
from icp_cert.railway.result_failures import ResultFailures

log = structlog.get_logger()

STORE_KEY_REASON = "the operating system store does not export private keys"
X509_ASN_ENCODING = "x509_asn"

StoreEnumerator = Callable[[str], Iterable[tuple[bytes, str, Any]]]
CommandRunner = Callable[[list[str]], bytes]


def _run_command(args: list[str]) -> bytes:
    completed = subprocess.run(args, capture_output=True, check=True)
    return completed.stdout


class WindowsStoreBackend:
    """
    Read certificates from a Windows system certificate store.

    Implements the KeystoreBackend port for OS_STORE_WINDOWS descriptors.
    Certificates are listed in the store's own enumeration order.
    """

    def __init__(
        self,
        store_name: str = "MY",
        enumerate_certificates: StoreEnumerator | None = None,
    ) -> None:
        self._store_name = store_name
        self._enumerate = enumerate_certificates or getattr(ssl, "enum_certificates", None)

    def open(self, descriptor: CertificateDescriptor) -> Result[KeystoreHandle]:
        if self._enumerate is None:
            return ResultFailures.backend_unavailable(
                "Windows certificate store is not available on this platform"
            )
        return (
            self._entries()
            .flat_map(self._load)
            .peek(lambda _: log.info(
                "keystore.opened",
                source=SourceType.OS_STORE_WINDOWS.value,
                store=self._store_name,
            ))
        )

    def _entries(self) -> Result[list[bytes]]:
        enumerate_certificates = self._enumerate
        assert enumerate_certificates is not None
        return Result.from_computation(
            lambda: [
                der
                for der, encoding, _trust in enumerate_certificates(self._store_name)
                if encoding == X509_ASN_ENCODING
            ],
            ErrorCode.BACKEND_UNAVAILABLE,
            f"Cannot enumerate Windows certificate store {self._store_name}",
        )

    @staticmethod
    def _load(certificates: list[bytes]) -> Result[KeystoreHandle]:
        return Result.from_computation(
            lambda: MemoryKeystore.from_certificates(
                [x509.load_der_x509_certificate(der) for der in certificates],
                STORE_KEY_REASON,
            ),
            ErrorCode.BACKEND_UNAVAILABLE,
            "Windows certificate store returned an unreadable certificate",
        )


class MacKeychainBackend:
    """
    Read certificates from the macOS keychain via the `security` tool.

    Implements the KeystoreBackend port for OS_STORE_MAC descriptors.
    With no keychain configured the user's default search list is used.
    """

    def __init__(
        self,
        keychain: str | None = None,
        run_command: CommandRunner = _run_command,
    ) -> None:
        self._keychain = keychain
        self._run_command = run_command

    def command(self) -> list[str]:
        args = ["security", "find-certificate", "-a", "-p"]
        if self._keychain:
            args.append(self._keychain)
        return args

    def open(self, descriptor: CertificateDescriptor) -> Result[KeystoreHandle]:
        return (
            self._export()
            .flat_map(self._load)
            .peek(lambda _: log.info(
                "keystore.opened",
                source=SourceType.OS_STORE_MAC.value,
                keychain=self._keychain or "default",
            ))
        )

    def _export(self) -> Result[bytes]:
        try:
            return Result.success(self._run_command(self.command()))
        except (OSError, subprocess.CalledProcessError) as exc:
            return ResultFailures.backend_unavailable(
                f"macOS keychain is not available: {exc}", exc
            )

    @staticmethod
    def _load(pem: bytes) -> Result[KeystoreHandle]:
        if not pem.strip():
            return Result.success(MemoryKeystore({}, STORE_KEY_REASON))
        return Result.from_computation(
            lambda: MemoryKeystore.from_certificates(
                x509.load_pem_x509_certificates(pem), STORE_KEY_REASON
            ),
            ErrorCode.BACKEND_UNAVAILABLE,
            "macOS keychain returned an unreadable certificate",
        )
