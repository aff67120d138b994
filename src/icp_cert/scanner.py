"""
Repository scanner — resolve every certificate in an operating-system store.

One handle is opened per scan and shared by every alias, so the store is
enumerated once instead of once per certificate:

  open store handle
    → enumerate aliases
      → resolve each alias with the shared handle
        → drop expired descriptors (unless include_expired)
  close handle
"""

from __future__ import annotations

import sys

import structlog

from icp_cert.domain.models import CertificateDescriptor, SourceType
from icp_cert.domain.ports import KeystoreHandle
from icp_cert.railway import ErrorCode
from icp_cert.railway.result import Result
from icp_cert.railway.result_failures import ResultFailures
from icp_cert.resolver import CertificateResolver

log = structlog.get_logger()


def platform_store(platform: str = sys.platform) -> SourceType:
    """The OS store native to platform: the keychain on macOS, else the Windows store."""
    return SourceType.OS_STORE_MAC if platform == "darwin" else SourceType.OS_STORE_WINDOWS


class RepositoryScanner:
    """
    Enumerate and resolve the certificates held in an OS store.

    default_store is the store searched by find_by_tax_id().
    """

    def __init__(
        self,
        resolver: CertificateResolver,
        default_store: SourceType | None = None,
    ) -> None:
        self._resolver = resolver
        self._default_store = default_store or platform_store()

    @property
    def default_store(self) -> SourceType:
        return self._default_store

    def scan_store(
        self,
        store_type: SourceType,
        include_expired: bool = False,
    ) -> Result[list[CertificateDescriptor]]:
        """
        Resolve every certificate in store_type.

        Returns Result[list[CertificateDescriptor]] in store enumeration order,
        with expired certificates removed unless include_expired is True,
        or the first failure from opening the store or resolving an alias.
        """
        if not isinstance(store_type, SourceType) or not store_type.is_os_store:
            return ResultFailures.invalid_argument(
                f"scan_store expects an operating-system store, got {store_type!r}"
            )
        template = CertificateDescriptor(source_type=store_type)
        return (
            self._resolver.open_keystore(template)
            .flat_map(lambda handle: self._scan_and_close(template, handle))
            .map(lambda resolved: [d for d in resolved if include_expired or d.is_valid])
            .peek(lambda descriptors: log.info(
                "scanner.complete",
                store=store_type.value,
                certificates=len(descriptors),
                include_expired=include_expired,
            ))
        )

    def find_by_tax_id(self, tax_id: str) -> Result[CertificateDescriptor]:
        """
        First certificate in the default store whose tax_id starts with tax_id.

        Expired certificates are searched too. Returns
        Result.failure(INVALID_ARGUMENT, ...) for an empty tax_id and
        Result.failure(CERTIFICATE_NOT_FOUND, ...) when nothing matches.
        """
        if not tax_id:
            return ResultFailures.invalid_argument("Tax ID is required")
        return self.scan_store(self._default_store, include_expired=True).flat_map(
            lambda descriptors: Result.from_optional(
                next(
                    (d for d in descriptors if d.tax_id and d.tax_id.startswith(tax_id)),
                    None,
                ),
                f"No certificate found for tax ID: {tax_id}",
                ErrorCode.CERTIFICATE_NOT_FOUND,
            )
        )

    def _scan_and_close(
        self, template: CertificateDescriptor, handle: KeystoreHandle
    ) -> Result[list[CertificateDescriptor]]:
        try:
            return handle.aliases().flat_map(
                lambda aliases: Result.all_of([
                    self._resolver.resolve(CertificateDescriptor(
                        source_type=template.source_type, alias=alias
                    ), handle)
                    for alias in aliases
                ])
            )
        finally:
            handle.close()
