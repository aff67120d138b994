"""
Composition root — wires settings into ready-to-use services.

This is the only place where concrete backends are instantiated; the
resolver, scanner and channel factory depend on the KeystoreBackend port.

    from icp_cert.main import create_services

    services = create_services()
    descriptor = CertificateDescriptor.from_pfx_file("client.pfx", "secret")
    client = services.channels.build_https_client(descriptor, "api.example.com")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import structlog

from icp_cert.adapters.os_stores import MacKeychainBackend, WindowsStoreBackend
from icp_cert.adapters.pkcs12_keystore import Pkcs12BytesBackend, Pkcs12FileBackend
from icp_cert.adapters.tls_channel import MutualTlsChannelFactory
from icp_cert.adapters.token_keystore import HardwareTokenBackend
from icp_cert.config import AppSettings
from icp_cert.domain.models import SourceType
from icp_cert.domain.ports import KeystoreBackend
from icp_cert.resolver import CertificateResolver
from icp_cert.scanner import RepositoryScanner

_STORE_NAMES = {
    "windows": SourceType.OS_STORE_WINDOWS,
    "mac": SourceType.OS_STORE_MAC,
}


def configure_structlog(log_level: str = "INFO") -> None:
    """Configure structlog for human-readable, level-filtered console output."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


@dataclass(frozen=True, slots=True)
class CertificateServices:
    resolver: CertificateResolver
    scanner: RepositoryScanner
    channels: MutualTlsChannelFactory


def create_backends(settings: AppSettings) -> dict[SourceType, KeystoreBackend]:
    """One backend per source type, configured from settings."""
    return {
        SourceType.FILE_P12: Pkcs12FileBackend(),
        SourceType.BYTES_P12: Pkcs12BytesBackend(),
        SourceType.OS_STORE_WINDOWS: WindowsStoreBackend(settings.store.windows_store_name),
        SourceType.OS_STORE_MAC: MacKeychainBackend(settings.store.mac_keychain),
        SourceType.HARDWARE_TOKEN: HardwareTokenBackend(),
    }


def create_services(settings: AppSettings | None = None) -> CertificateServices:
    """
    Build the resolver, scanner and mutual-TLS factory.

    Loads AppSettings from the environment when settings is None and
    configures logging at the configured level.
    """
    settings = settings or AppSettings()
    configure_structlog(settings.log_level)

    resolver = CertificateResolver(create_backends(settings))
    default_store = (
        _STORE_NAMES[settings.store.default_store]
        if settings.store.default_store is not None
        else None
    )
    services = CertificateServices(
        resolver=resolver,
        scanner=RepositoryScanner(resolver, default_store),
        channels=MutualTlsChannelFactory(
            resolver,
            ca_bundle=settings.tls.ca_bundle_path,
            timeout_seconds=settings.tls.timeout_seconds,
        ),
    )
    structlog.get_logger().info(
        "services.ready",
        default_store=services.scanner.default_store.value,
        ca_bundle=str(settings.tls.ca_bundle_path or "certifi"),
    )
    return services
