"""
Ports — Protocol-based interfaces for certificate sources.

These define WHAT the resolver needs from a certificate source without
specifying HOW a platform provides it:

  Resolver ← Ports (protocols) ← Adapters (PKCS#12, OS stores, PKCS#11)

Every source type is reached the same way: a KeystoreBackend opens a
KeystoreHandle for a descriptor, and the handle enumerates aliases and hands
out certificates and (where the source allows it) TLS key material.

Handles are not safe for concurrent use from several threads; open one
handle per thread instead of sharing.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from cryptography import x509

from icp_cert.domain.models import CertificateDescriptor, KeyMaterial
from icp_cert.railway.result import Result


@runtime_checkable
class KeystoreHandle(Protocol):
    """
    Port: an opened certificate source.

    aliases() lists entries in the source's own enumeration order; the first
    alias is what the resolver picks when the descriptor names none.
    """

    def aliases(self) -> Result[list[str]]: ...

    def certificate(self, alias: str) -> Result[x509.Certificate]:
        """Certificate stored under alias, or CERTIFICATE_NOT_FOUND."""
        ...

    def private_key(self, alias: str) -> Result[KeyMaterial]:
        """Key + chain for presenting alias in a TLS handshake, or KEY_UNAVAILABLE."""
        ...

    def close(self) -> None: ...


@runtime_checkable
class KeystoreBackend(Protocol):
    """
    Port: open a KeystoreHandle for one source type.

    Wrong passwords/PINs must come back as INVALID_CREDENTIAL, distinct from
    BACKEND_UNAVAILABLE / PROVIDER_UNAVAILABLE, so callers can ask the user
    again instead of aborting.
    """

    def open(self, descriptor: CertificateDescriptor) -> Result[KeystoreHandle]: ...


@runtime_checkable
class TokenSession(Protocol):
    """
    Port: a logged-in session on a hardware token, as the platform binding sees it.

    Methods may raise the binding's own exceptions; HardwareTokenBackend maps
    them onto error codes. private_key() returns None when the token keeps
    the key non-exportable.
    """

    def labels(self) -> Iterable[str]: ...

    def certificate(self, label: str) -> x509.Certificate | None: ...

    def private_key(self, label: str) -> KeyMaterial | None: ...

    def close(self) -> None: ...


@runtime_checkable
class TokenProvider(Protocol):
    """
    Port: a cryptographic hardware module (smart card / USB token).

    The provider travels inside the descriptor; the PIN is the descriptor's
    password.
    """

    def open_session(self, pin: str) -> TokenSession: ...
