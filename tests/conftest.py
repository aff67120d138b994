"""
Shared test fixtures and helpers for the icp-cert test suite.

Certificates, PKCS#12 blobs and ICP-Brasil subject alternative names are
generated on the fly with cryptography, so no binary fixtures are checked in.

ICP-Brasil otherName entries are built exactly as issuers encode them:
OID 2.16.76.1.3.x, then [0] EXPLICIT, then an OCTET STRING holding the data.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

PASSWORD = "secret"

HOLDER_DATA_OID = "2.16.76.1.3.1"
RESPONSIBLE_NAME_OID = "2.16.76.1.3.2"
CORPORATE_ID_OID = "2.16.76.1.3.3"
RESPONSIBLE_DATA_OID = "2.16.76.1.3.4"

CNPJ = "12345678000195"
CPF = "12345678901"
HOLDER_CPF = "98765432100"
RESPONSIBLE_NAME = "MARIA DA SILVA"
BIRTH_DATE = "01011980"


# ─────────────────────── Builders ───────────────────────


def make_key() -> ec.EllipticCurvePrivateKey:
    return ec.generate_private_key(ec.SECP256R1())


def icp_other_name(oid: str, data: str | bytes) -> x509.OtherName:
    """otherName whose [0] EXPLICIT value is an OCTET STRING of data (short form length)."""
    raw = data.encode("latin-1") if isinstance(data, str) else data
    return x509.OtherName(x509.ObjectIdentifier(oid), b"\x04" + bytes([len(raw)]) + raw)


def responsible_data(cpf: str = CPF) -> str:
    """Birth date, CPF, NIS, RG and issuing agency, as in 2.16.76.1.3.4."""
    return BIRTH_DATE + cpf + "00000000000" + "000000000000000" + "SSPSP"


def build_certificate(
    common_name: str | None = "Test Holder",
    *,
    key: ec.EllipticCurvePrivateKey | None = None,
    issuer_cn: str = "AC Teste",
    issuer_key: ec.EllipticCurvePrivateKey | None = None,
    not_before: datetime | None = None,
    not_after: datetime | None = None,
    other_names: list[x509.OtherName] | None = None,
    dns_names: list[str] | None = None,
    serial_number: int | None = None,
    is_ca: bool = False,
) -> tuple[x509.Certificate, ec.EllipticCurvePrivateKey]:
    """Certificate for key (generated when omitted), signed by issuer_key or self-signed."""
    key = key or make_key()
    now = datetime.now(UTC)
    subject_attrs = [x509.NameAttribute(NameOID.ORGANIZATION_NAME, "ICP-Brasil")]
    if common_name is not None:
        subject_attrs.append(x509.NameAttribute(NameOID.COMMON_NAME, common_name))

    subject = x509.Name(subject_attrs)
    # Self-signed roots name themselves as issuer so they can anchor a chain.
    issuer = subject if is_ca and issuer_key is None else x509.Name([
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "ICP-Brasil"),
        x509.NameAttribute(NameOID.COMMON_NAME, issuer_cn),
    ])

    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(key.public_key())
        .serial_number(serial_number or x509.random_serial_number())
        .not_valid_before(not_before or now - timedelta(days=1))
        .not_valid_after(not_after or now + timedelta(days=365))
        .add_extension(x509.BasicConstraints(ca=is_ca, path_length=None), critical=True)
    )
    general_names: list[x509.GeneralName] = list(other_names or [])
    general_names += [x509.DNSName(name) for name in dns_names or []]
    if general_names:
        builder = builder.add_extension(
            x509.SubjectAlternativeName(general_names), critical=False
        )
    certificate = builder.sign(issuer_key or key, hashes.SHA256())
    return certificate, key


def corporate_other_names() -> list[x509.OtherName]:
    return [
        icp_other_name(RESPONSIBLE_DATA_OID, responsible_data()),
        icp_other_name(RESPONSIBLE_NAME_OID, RESPONSIBLE_NAME),
        icp_other_name(CORPORATE_ID_OID, CNPJ),
    ]


def individual_other_names() -> list[x509.OtherName]:
    return [icp_other_name(HOLDER_DATA_OID, responsible_data(HOLDER_CPF))]


def pfx_bytes(
    certificate: x509.Certificate,
    key: ec.EllipticCurvePrivateKey | None,
    password: str = PASSWORD,
    name: bytes | None = b"client",
    chain: list[x509.Certificate] | None = None,
) -> bytes:
    return pkcs12.serialize_key_and_certificates(
        name,
        key,
        certificate,
        chain,
        serialization.BestAvailableEncryption(password.encode("utf-8")),
    )


def pem(certificate: x509.Certificate) -> bytes:
    return certificate.public_bytes(serialization.Encoding.PEM)


# ─────────────────────── Fixtures ───────────────────────


@pytest.fixture()
def corporate_certificate() -> tuple[x509.Certificate, ec.EllipticCurvePrivateKey]:
    """Corporate (e-CNPJ style) certificate with CNPJ, responsible CPF and name."""
    return build_certificate("EMPRESA TESTE LTDA:12345678000195", other_names=corporate_other_names())


@pytest.fixture()
def individual_certificate() -> tuple[x509.Certificate, ec.EllipticCurvePrivateKey]:
    """Individual (e-CPF style) certificate with holder data only."""
    return build_certificate("JOAO DA SILVA:98765432100", other_names=individual_other_names())


@pytest.fixture()
def plain_certificate() -> tuple[x509.Certificate, ec.EllipticCurvePrivateKey]:
    """Certificate without a subject alternative name."""
    return build_certificate("Plain Holder")


@pytest.fixture()
def expired_certificate() -> tuple[x509.Certificate, ec.EllipticCurvePrivateKey]:
    now = datetime.now(UTC)
    return build_certificate(
        "Expired Holder",
        not_before=now - timedelta(days=400),
        not_after=now - timedelta(days=30),
        other_names=corporate_other_names(),
    )


@pytest.fixture()
def corporate_pfx(corporate_certificate) -> bytes:
    certificate, key = corporate_certificate
    return pfx_bytes(certificate, key)
