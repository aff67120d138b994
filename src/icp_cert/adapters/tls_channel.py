"""
Mutual-TLS adapter — client SSL contexts bound to a resolved certificate.

Adapter layer — builds ssl.SSLContext objects that present a descriptor's
certificate and private key during the handshake and verify the server
against a CA bundle, plus httpx clients that use them.

Process-wide default
--------------------
A descriptor with concurrency_mode=False also installs its context as the
process-wide default for urllib HTTPS (DEFAULT_HTTPS_SLOT). There is one
slot: installing another certificate replaces it for the whole process, and
concurrent installs end with whichever writer ran last. Callers that use
several certificate identities at once must set concurrency_mode=True and
use the returned context or client directly; the slot is then left alone.
"""

from __future__ import annotations

import secrets
import ssl
import tempfile
import threading
import urllib.request
from pathlib import Path

import certifi
import httpx
import structlog
from cryptography.hazmat.primitives import serialization

from icp_cert.domain.models import CertificateDescriptor, KeyMaterial
from icp_cert.domain.ports import KeystoreHandle
from icp_cert.railway import ErrorCode
from icp_cert.railway.failure import FailureDescription
from icp_cert.railway.result import Result
from icp_cert.railway.result_failures import ResultFailures
from icp_cert.resolver import CertificateResolver

log = structlog.get_logger()

HTTPS_PORT = 443

TLS_VERSIONS: dict[str, ssl.TLSVersion] = {
    "TLS": ssl.TLSVersion.MINIMUM_SUPPORTED,
    "TLSv1": ssl.TLSVersion.TLSv1,
    "TLSv1.1": ssl.TLSVersion.TLSv1_1,
    "TLSv1.2": ssl.TLSVersion.TLSv1_2,
    "TLSv1.3": ssl.TLSVersion.TLSv1_3,
}

CaBundle = str | Path | bytes


class DefaultHttpsSlot:
    """
    The single process-wide default HTTPS context.

    install() replaces the current context and the urllib opener under a
    lock; the last install wins.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._context: ssl.SSLContext | None = None
        self._alias: str | None = None

    @property
    def context(self) -> ssl.SSLContext | None:
        with self._lock:
            return self._context

    @property
    def alias(self) -> str | None:
        with self._lock:
            return self._alias

    def install(self, context: ssl.SSLContext, alias: str | None = None) -> None:
        with self._lock:
            self._context = context
            self._alias = alias
            opener = urllib.request.build_opener(urllib.request.HTTPSHandler(context=context))
            urllib.request.install_opener(opener)
        log.info("tls.default_context_installed", alias=alias)

    def clear(self) -> None:
        with self._lock:
            self._context = None
            self._alias = None
            urllib.request.install_opener(None)  # type: ignore[arg-type]


DEFAULT_HTTPS_SLOT = DefaultHttpsSlot()


def load_trust_anchors(context: ssl.SSLContext, ca_bundle: CaBundle) -> None:
    """
    Load a CA bundle into context.

    Accepts a path, PEM text (str or bytes) or DER bytes of a single certificate.
    """
    if isinstance(ca_bundle, Path):
        context.load_verify_locations(cafile=str(ca_bundle))
    elif isinstance(ca_bundle, str):
        if "-----BEGIN" in ca_bundle:
            context.load_verify_locations(cadata=ca_bundle)
        else:
            context.load_verify_locations(cafile=ca_bundle)
    elif b"-----BEGIN" in ca_bundle:
        context.load_verify_locations(cadata=ca_bundle.decode("ascii"))
    else:
        context.load_verify_locations(cadata=ca_bundle)


def load_client_identity(context: ssl.SSLContext, material: KeyMaterial) -> None:
    """
    Make context present material's certificate chain and key.

    ssl only loads key material from files, so the key is written encrypted
    under a one-off password into a private temporary directory that is
    removed as soon as it has been loaded.
    """
    passphrase = secrets.token_bytes(32)
    key_pem = material.private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.BestAvailableEncryption(passphrase),
    )
    chain_pem = b"".join(
        cert.public_bytes(serialization.Encoding.PEM)
        for cert in (material.certificate, *material.chain)
    )
    with tempfile.TemporaryDirectory(prefix="icp-cert-") as tmp:
        cert_file = Path(tmp) / "client.pem"
        key_file = Path(tmp) / "client.key"
        cert_file.write_bytes(chain_pem)
        key_file.write_bytes(key_pem)
        context.load_cert_chain(str(cert_file), str(key_file), password=passphrase)


def _tls_failure(error: FailureDescription) -> FailureDescription:
    if error.code in (ErrorCode.TLS_SETUP_ERROR, ErrorCode.INVALID_ARGUMENT):
        return error
    return FailureDescription(
        code=ErrorCode.TLS_SETUP_ERROR,
        message=f"Mutual-TLS setup failed ({error.code.value}): {error.message}",
        exception=error.exception,
    )


class MutualTlsChannelFactory:
    """
    Build mutual-TLS contexts and HTTPS clients for resolved descriptors.

    ca_bundle is the default trust-anchor bundle (certifi's when None);
    build_channel() and build_https_client() accept a per-call override.
    """

    def __init__(
        self,
        resolver: CertificateResolver,
        ca_bundle: CaBundle | None = None,
        timeout_seconds: float = 60,
        slot: DefaultHttpsSlot = DEFAULT_HTTPS_SLOT,
    ) -> None:
        self._resolver = resolver
        self._ca_bundle = ca_bundle
        self._timeout_seconds = timeout_seconds
        self._slot = slot

    def build_channel(
        self,
        descriptor: CertificateDescriptor | None,
        ca_bundle: CaBundle | None = None,
        handle: KeystoreHandle | None = None,
    ) -> Result[ssl.SSLContext]:
        """
        Client context presenting descriptor's certificate and key.

        Reuses handle when given (left open); otherwise opens one and closes
        it once the key has been read. Unless descriptor.concurrency_mode is
        set, the context is also installed as the process-wide default.

        Returns Result[ssl.SSLContext], Result.failure(INVALID_ARGUMENT, ...)
        for a missing descriptor, or Result.failure(TLS_SETUP_ERROR, ...)
        wrapping any keystore, key or trust-store failure.
        """
        if descriptor is None:
            return ResultFailures.invalid_argument("Certificate descriptor is required")

        selected = (
            self._key_material(descriptor, handle)
            if handle is not None
            else self._resolver.open_keystore(descriptor).flat_map(
                lambda opened: self._key_material_and_close(descriptor, opened)
            )
        )
        return (
            selected
            .flat_map(lambda chosen: self._context_for(descriptor, *chosen, ca_bundle))
            .map_failure(_tls_failure)
        )

    def build_https_client(
        self,
        descriptor: CertificateDescriptor | None,
        target_host: str,
        ca_bundle: CaBundle | None = None,
        handle: KeystoreHandle | None = None,
    ) -> Result[httpx.Client]:
        """httpx client for https://{target_host}:443 presenting descriptor's certificate."""
        if not target_host:
            return ResultFailures.invalid_argument("Target host is required")
        return self.build_channel(descriptor, ca_bundle, handle).map(
            lambda context: httpx.Client(
                base_url=f"https://{target_host}:{HTTPS_PORT}",
                verify=context,
                timeout=self._timeout_seconds,
            )
        )

    # ─────────────────────── Internals ───────────────────────

    def _key_material(
        self, descriptor: CertificateDescriptor, handle: KeystoreHandle
    ) -> Result[tuple[str, KeyMaterial]]:
        """The selected alias with its key material."""
        return self._resolver.select_alias(descriptor, handle).flat_map(
            lambda alias: handle.private_key(alias).map(lambda material: (alias, material))
        )

    def _key_material_and_close(
        self, descriptor: CertificateDescriptor, handle: KeystoreHandle
    ) -> Result[tuple[str, KeyMaterial]]:
        try:
            return self._key_material(descriptor, handle)
        finally:
            handle.close()

    def _context_for(
        self,
        descriptor: CertificateDescriptor,
        alias: str,
        material: KeyMaterial,
        ca_bundle: CaBundle | None,
    ) -> Result[ssl.SSLContext]:
        return self._create_context(descriptor, material, ca_bundle).peek(
            lambda context: self._register(descriptor, alias, context)
        )

    def _create_context(
        self,
        descriptor: CertificateDescriptor,
        material: KeyMaterial,
        ca_bundle: CaBundle | None,
    ) -> Result[ssl.SSLContext]:
        minimum = TLS_VERSIONS.get(descriptor.tls_protocol_version)
        if minimum is None:
            return ResultFailures.tls_setup_error(
                f"Unsupported TLS protocol version: {descriptor.tls_protocol_version}"
            )
        bundle = ca_bundle or self._ca_bundle or Path(certifi.where())

        def build() -> ssl.SSLContext:
            context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
            context.minimum_version = minimum
            load_trust_anchors(context, bundle)
            load_client_identity(context, material)
            return context

        return Result.from_computation(
            build,
            ErrorCode.TLS_SETUP_ERROR,
            "Cannot build mutual-TLS context",
        )

    def _register(
        self, descriptor: CertificateDescriptor, alias: str, context: ssl.SSLContext
    ) -> None:
        if descriptor.concurrency_mode:
            log.info("tls.context_built", alias=alias, installed=False)
            return
        self._slot.install(context, alias)
