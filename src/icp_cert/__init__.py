"""
icp_cert — certificate resolution and mutual TLS for ICP-Brasil identities.

Resolves a certificate from a PKCS#12 file or blob, an operating-system
store or a hardware token into a CertificateDescriptor, recovers the
holder's taxpayer identifiers from the subject alternative name, and builds
mutual-TLS contexts and HTTPS clients from it.
"""

from icp_cert.domain.models import CertificateDescriptor, SourceType, TaxpayerIdentity

__version__ = "0.1.0"

__all__ = ["CertificateDescriptor", "SourceType", "TaxpayerIdentity", "__version__"]
