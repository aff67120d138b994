"""
Taxpayer identity decoder for the subject alternative name extension.

ICP-Brasil certificates carry the holder's tax identifiers as otherName
entries inside the subject alternative name (OID 2.5.29.17). The entries are
not decoded as ASN.1 here: the extension value is scanned as raw bytes for
the DER encoding of each otherName OID, and the fields are read at fixed
offsets from where that OID starts.

Layout of one otherName, with i = index of the OID's 0x06 tag:

    i      06 05 60 4C 01 03 xx     OID 2.16.76.1.3.xx (7 bytes, the indicator)
    i+7    A0 LL                    [0] EXPLICIT
    i+9    04|13 LL                 OCTET STRING / PrintableString
    i+10   LL                       ↑ length byte of the value
    i+11   ...                      value bytes

Indicators handled:
  - 2.16.76.1.3.3  corporate ID (CNPJ, 14 digits), read from i+6 to i+25
                   with non-digits stripped
  - 2.16.76.1.3.1  certificate holder data; 11-digit individual ID (CPF) at i+19
  - 2.16.76.1.3.4  responsible person data; 11-digit individual ID at i+19
  - 2.16.76.1.3.2  responsible person name; length at i+10, value at i+11

A missing indicator means "field absent". An indicator whose fixed offsets
run past the end of the buffer raises BufferOutOfRange; decode() leaves that
field unset and fails with BUFFER_OUT_OF_RANGE only when nothing was recovered.
"""

from __future__ import annotations

import re
from typing import Callable

import structlog
from cryptography import x509
from cryptography.hazmat.primitives.serialization import Encoding
from pyasn1.codec.der import decoder as der_decoder
from pyasn1_modules import rfc5280

from icp_cert.domain.models import TaxpayerIdentity
from icp_cert.railway import ErrorCode
from icp_cert.railway.result import Result

log = structlog.get_logger()

SUBJECT_ALT_NAME_OID = "2.5.29.17"

CORPORATE_ID_INDICATOR = bytes([6, 5, 96, 76, 1, 3, 3])
CORPORATE_ID_START = 6
CORPORATE_ID_END = 25

HOLDER_DATA_INDICATOR = bytes([6, 5, 96, 76, 1, 3, 1])
RESPONSIBLE_DATA_INDICATOR = bytes([6, 5, 96, 76, 1, 3, 4])
INDIVIDUAL_ID_OFFSET = 19
INDIVIDUAL_ID_LENGTH = 11

RESPONSIBLE_NAME_INDICATOR = bytes([6, 5, 96, 76, 1, 3, 2])
RESPONSIBLE_NAME_OFFSET = 11

CORPORATE_ID_PATTERN = re.compile(r"\d{14}")
INDIVIDUAL_ID_PATTERN = re.compile(r"(?<!\d)\d{11}(?!\d)")
_NON_DIGITS = re.compile(r"\D")


class BufferOutOfRange(IndexError):
    """An indicator was found but its fixed-offset field lies outside the buffer."""

    def __init__(self, start: int, end: int, length: int) -> None:
        super().__init__(f"Range [{start}, {end}) outside extension of {length} bytes")
        self.start = start
        self.end = end
        self.length = length


# ─────────────────────── Byte-level helpers ───────────────────────


def find_indicator(buffer: bytes, indicator: bytes) -> int | None:
    """Index of the first exact occurrence of indicator, or None."""
    if not indicator or len(buffer) < len(indicator):
        return None
    index = buffer.find(indicator)
    return None if index == -1 else index


def _read(buffer: bytes, start: int, end: int) -> bytes:
    if start < 0 or start > end or end > len(buffer):
        raise BufferOutOfRange(start, end, len(buffer))
    return buffer[start:end]


def validate_document(candidate: str) -> str | None:
    """
    Leftmost 14-digit corporate ID, else leftmost standalone 11-digit individual ID.

    The 14-digit pattern is tried first on the same text, so a string holding
    both shapes resolves to the corporate ID.
    """
    match = CORPORATE_ID_PATTERN.search(candidate)
    if match is not None:
        return match.group()
    match = INDIVIDUAL_ID_PATTERN.search(candidate)
    if match is not None:
        return match.group()
    return None


def _decode_text(raw: bytes) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return raw.decode("latin-1")


# ─────────────────────── Certificate access ───────────────────────


def extension_value(
    certificate: x509.Certificate,
    oid: str = SUBJECT_ALT_NAME_OID,
) -> bytes | None:
    """
    Contents of the extnValue OCTET STRING for oid, or None if the extension is absent.

    The certificate is re-parsed with pyasn1 rather than read through
    cryptography's typed extension API, so unusual otherName content never
    prevents reading the bytes.
    """
    der = certificate.public_bytes(Encoding.DER)
    decoded, _ = der_decoder.decode(der, asn1Spec=rfc5280.Certificate())
    extensions = decoded["tbsCertificate"]["extensions"]
    if not extensions.isValue:
        return None
    for extension in extensions:
        if str(extension["extnID"]) == oid:
            return bytes(extension["extnValue"])
    return None


# ─────────────────────── Public decoder ───────────────────────


class ExtensionDecoder:
    """
    Recover taxpayer identifiers from a subject alternative name value.

    The process_* methods return None when their indicator is absent and
    raise BufferOutOfRange when it is present but truncated. decode() runs
    every path and keeps whatever the untruncated paths recovered.
    """

    def process_document(self, buffer: bytes) -> str | None:
        """Corporate ID path, falling back to an 11-digit ID in the same text."""
        index = find_indicator(buffer, CORPORATE_ID_INDICATOR)
        if index is None:
            return None
        raw = _read(buffer, index + CORPORATE_ID_START, index + CORPORATE_ID_END)
        digits = _NON_DIGITS.sub("", raw.decode("latin-1"))
        return validate_document(digits)

    def process_tax_id(self, buffer: bytes) -> str | None:
        """11-digit ID of the person responsible for the certificate."""
        return self._individual_id(buffer, RESPONSIBLE_DATA_INDICATOR)

    def process_holder_tax_id(self, buffer: bytes) -> str | None:
        """11-digit ID of an individual certificate holder."""
        return self._individual_id(buffer, HOLDER_DATA_INDICATOR)

    def process_individual_name(self, buffer: bytes) -> str | None:
        index = find_indicator(buffer, RESPONSIBLE_NAME_INDICATOR)
        if index is None:
            return None
        start = index + RESPONSIBLE_NAME_OFFSET
        size = _read(buffer, start - 1, start)[0]
        name = _decode_text(_read(buffer, start, start + size))
        return name or None

    def decode(self, buffer: bytes) -> Result[TaxpayerIdentity]:
        """
        Run every extraction path over buffer.

        A truncated path only leaves its own field unset. Returns
        Result[TaxpayerIdentity] (fields unset when their indicator is absent),
        or Result.failure(BUFFER_OUT_OF_RANGE, ...) when an indicator was found
        but every field came out truncated or absent.
        """
        truncated: list[BufferOutOfRange] = []

        def attempt(path: str, read: Callable[[bytes], str | None]) -> str | None:
            try:
                return read(buffer)
            except BufferOutOfRange as exc:
                log.debug("decoder.field_truncated", path=path, reason=str(exc))
                truncated.append(exc)
                return None

        responsible_id = attempt("responsible_id", self.process_tax_id)
        tax_id = (
            attempt("corporate_id", self.process_document)
            or attempt("holder_id", self.process_holder_tax_id)
            or responsible_id
        )
        identity = TaxpayerIdentity(
            tax_id=tax_id,
            individual_tax_id=responsible_id,
            individual_name=attempt("responsible_name", self.process_individual_name),
        )
        if truncated and identity == TaxpayerIdentity():
            return Result.failure(
                ErrorCode.BUFFER_OUT_OF_RANGE,
                "Subject alternative name is truncated",
                truncated[0],
            )
        return Result.success(identity)

    def _individual_id(self, buffer: bytes, indicator: bytes) -> str | None:
        index = find_indicator(buffer, indicator)
        if index is None:
            return None
        start = index + INDIVIDUAL_ID_OFFSET
        raw = _read(buffer, start, start + INDIVIDUAL_ID_LENGTH)
        match = INDIVIDUAL_ID_PATTERN.search(raw.decode("latin-1"))
        return match.group() if match is not None else None
