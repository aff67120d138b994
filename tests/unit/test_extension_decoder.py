"""
Unit tests for ExtensionDecoder — taxpayer identifiers from raw SAN bytes.

Buffers are assembled by hand to pin the byte offsets, then the decoder is
run against real certificates built in conftest.
"""

from __future__ import annotations

import pytest

from icp_cert.adapters.extension_decoder import (
    CORPORATE_ID_INDICATOR,
    HOLDER_DATA_INDICATOR,
    RESPONSIBLE_DATA_INDICATOR,
    RESPONSIBLE_NAME_INDICATOR,
    BufferOutOfRange,
    ExtensionDecoder,
    extension_value,
    find_indicator,
    validate_document,
)
from icp_cert.domain.models import TaxpayerIdentity
from icp_cert.railway import ErrorCode, ResultAssertions
from tests.conftest import CNPJ, CPF, HOLDER_CPF, RESPONSIBLE_NAME, responsible_data


def other_name(indicator: bytes, data: bytes) -> bytes:
    """indicator, [0] EXPLICIT, OCTET STRING data — as found inside a SAN."""
    inner = b"\x04" + bytes([len(data)]) + data
    return indicator + b"\xa0" + bytes([len(inner)]) + inner


@pytest.fixture()
def decoder() -> ExtensionDecoder:
    return ExtensionDecoder()


# ─────────────────────── find_indicator ───────────────────────


class TestFindIndicator:
    def test_returns_first_match(self) -> None:
        buffer = b"\x00\x01" + RESPONSIBLE_DATA_INDICATOR + b"\xff" + RESPONSIBLE_DATA_INDICATOR
        assert find_indicator(buffer, RESPONSIBLE_DATA_INDICATOR) == 2

    def test_absent_indicator(self) -> None:
        assert find_indicator(b"\x30\x03\x02\x01\x00", RESPONSIBLE_DATA_INDICATOR) is None

    @pytest.mark.parametrize("buffer", [b"", b"\x06\x05\x60"])
    def test_short_buffer_is_absent(self, buffer: bytes) -> None:
        assert find_indicator(buffer, RESPONSIBLE_DATA_INDICATOR) is None

    def test_empty_indicator_is_absent(self) -> None:
        assert find_indicator(b"\x06\x05", b"") is None

    def test_sibling_indicators_do_not_match(self) -> None:
        buffer = other_name(HOLDER_DATA_INDICATOR, b"0" * 30)
        assert find_indicator(buffer, RESPONSIBLE_DATA_INDICATOR) is None


# ─────────────────────── validate_document ───────────────────────


class TestValidateDocument:
    def test_fourteen_digits_is_corporate(self) -> None:
        assert validate_document(CNPJ) == CNPJ

    def test_eleven_digits_is_individual(self) -> None:
        assert validate_document(CPF) == CPF

    def test_corporate_preferred_when_both_shapes_present(self) -> None:
        assert validate_document(f"{CPF}-{CNPJ}") == CNPJ

    def test_eleven_digits_must_stand_alone(self) -> None:
        """
        GIVEN a 12-digit run (neither a CNPJ nor a standalone CPF)
        WHEN validated
        THEN nothing is accepted.
        """
        assert validate_document("123456789012") is None

    def test_individual_inside_text(self) -> None:
        assert validate_document(f"ab{CPF}cd") == CPF

    def test_no_digits(self) -> None:
        assert validate_document("no digits here") is None


# ─────────────────────── process_* paths ───────────────────────


class TestProcessTaxId:
    def test_reads_eleven_digits_at_offset_nineteen(self, decoder: ExtensionDecoder) -> None:
        """
        GIVEN indicator {6,5,96,76,1,3,4} followed at offset 19 by "12345678901"
        WHEN process_tax_id runs
        THEN "12345678901" is returned.
        """
        buffer = RESPONSIBLE_DATA_INDICATOR + b"\xa0\x1b\x04\x19" + b"01011980" + b"12345678901"
        assert buffer.index(b"12345678901") == 19
        assert decoder.process_tax_id(buffer) == "12345678901"

    def test_indicator_not_at_start(self, decoder: ExtensionDecoder) -> None:
        buffer = b"\x30\x40" + other_name(RESPONSIBLE_DATA_INDICATOR, responsible_data().encode())
        assert decoder.process_tax_id(buffer) == CPF

    def test_absent_indicator_returns_none(self, decoder: ExtensionDecoder) -> None:
        assert decoder.process_tax_id(b"\x30\x00" * 20) is None

    def test_non_digit_field_returns_none(self, decoder: ExtensionDecoder) -> None:
        buffer = other_name(RESPONSIBLE_DATA_INDICATOR, b"01011980" + b"ABCDEFGHIJK")
        assert decoder.process_tax_id(buffer) is None

    def test_truncated_field_raises(self, decoder: ExtensionDecoder) -> None:
        """
        GIVEN the indicator followed by fewer than 19 + 11 bytes
        WHEN process_tax_id runs
        THEN BufferOutOfRange is raised instead of reading past the buffer.
        """
        buffer = RESPONSIBLE_DATA_INDICATOR + b"\xa0\x0a\x04\x08" + b"0101198012"
        with pytest.raises(BufferOutOfRange):
            decoder.process_tax_id(buffer)

    def test_field_ending_exactly_at_buffer_end(self, decoder: ExtensionDecoder) -> None:
        buffer = other_name(RESPONSIBLE_DATA_INDICATOR, b"01011980" + CPF.encode())
        assert len(buffer) == 19 + 11
        assert decoder.process_tax_id(buffer) == CPF


class TestProcessHolderTaxId:
    def test_reads_holder_cpf(self, decoder: ExtensionDecoder) -> None:
        buffer = other_name(HOLDER_DATA_INDICATOR, responsible_data(HOLDER_CPF).encode())
        assert decoder.process_holder_tax_id(buffer) == HOLDER_CPF

    def test_absent(self, decoder: ExtensionDecoder) -> None:
        buffer = other_name(RESPONSIBLE_DATA_INDICATOR, responsible_data().encode())
        assert decoder.process_holder_tax_id(buffer) is None


class TestProcessDocument:
    def test_corporate_id(self, decoder: ExtensionDecoder) -> None:
        buffer = other_name(CORPORATE_ID_INDICATOR, CNPJ.encode())
        assert decoder.process_document(buffer) == CNPJ

    def test_falls_back_to_eleven_digits(self, decoder: ExtensionDecoder) -> None:
        """
        GIVEN the corporate indicator carrying an 11-digit value
        WHEN process_document runs
        THEN the 11-digit value is accepted by the fallback pattern.
        """
        buffer = other_name(CORPORATE_ID_INDICATOR, CPF.encode()) + b"\xa1\x03\x0a\x01\x00"
        assert decoder.process_document(buffer) == CPF

    def test_absent(self, decoder: ExtensionDecoder) -> None:
        assert decoder.process_document(b"\x00" * 40) is None

    def test_truncated_raises(self, decoder: ExtensionDecoder) -> None:
        buffer = other_name(CORPORATE_ID_INDICATOR, CNPJ[:10].encode())
        with pytest.raises(BufferOutOfRange):
            decoder.process_document(buffer)


class TestProcessIndividualName:
    def test_reads_length_prefixed_name(self, decoder: ExtensionDecoder) -> None:
        buffer = other_name(RESPONSIBLE_NAME_INDICATOR, RESPONSIBLE_NAME.encode())
        assert decoder.process_individual_name(buffer) == RESPONSIBLE_NAME

    def test_latin1_name(self, decoder: ExtensionDecoder) -> None:
        name = "JOSÉ CONCEIÇÃO"
        buffer = other_name(RESPONSIBLE_NAME_INDICATOR, name.encode("latin-1"))
        assert decoder.process_individual_name(buffer) == name

    def test_utf8_name(self, decoder: ExtensionDecoder) -> None:
        name = "JOSÉ CONCEIÇÃO"
        buffer = other_name(RESPONSIBLE_NAME_INDICATOR, name.encode("utf-8"))
        assert decoder.process_individual_name(buffer) == name

    def test_length_past_end_raises(self, decoder: ExtensionDecoder) -> None:
        buffer = RESPONSIBLE_NAME_INDICATOR + b"\xa0\x20\x04\x1e" + b"MARIA"
        with pytest.raises(BufferOutOfRange):
            decoder.process_individual_name(buffer)

    def test_absent(self, decoder: ExtensionDecoder) -> None:
        assert decoder.process_individual_name(b"\x01\x02\x03") is None


# ─────────────────────── decode ───────────────────────


class TestDecode:
    def test_buffer_without_indicators(self, decoder: ExtensionDecoder) -> None:
        """
        GIVEN a buffer with none of the indicators
        WHEN decoded
        THEN every field is absent and no failure is reported.
        """
        identity = ResultAssertions.assert_success(decoder.decode(b"\x30\x0b\x82\x09localhost"))
        assert identity == TaxpayerIdentity()

    def test_corporate_buffer(self, decoder: ExtensionDecoder) -> None:
        buffer = (
            other_name(RESPONSIBLE_DATA_INDICATOR, responsible_data().encode())
            + other_name(RESPONSIBLE_NAME_INDICATOR, RESPONSIBLE_NAME.encode())
            + other_name(CORPORATE_ID_INDICATOR, CNPJ.encode())
        )
        identity = ResultAssertions.assert_success(decoder.decode(buffer))
        assert identity.tax_id == CNPJ
        assert identity.individual_tax_id == CPF
        assert identity.individual_name == RESPONSIBLE_NAME

    def test_responsible_id_feeds_tax_id_without_corporate_id(self, decoder: ExtensionDecoder) -> None:
        buffer = other_name(RESPONSIBLE_DATA_INDICATOR, responsible_data().encode())
        identity = ResultAssertions.assert_success(decoder.decode(buffer))
        assert identity.tax_id == CPF
        assert identity.individual_tax_id == CPF

    def test_truncated_buffer_is_failure(self, decoder: ExtensionDecoder) -> None:
        buffer = RESPONSIBLE_DATA_INDICATOR + b"\xa0\x02\x04\x00"
        error = ResultAssertions.assert_failure(decoder.decode(buffer), ErrorCode.BUFFER_OUT_OF_RANGE)
        assert isinstance(error.exception, BufferOutOfRange)

    def test_truncated_field_keeps_other_fields(self, decoder: ExtensionDecoder) -> None:
        """
        GIVEN a complete corporate ID followed by a name whose length byte overstates it
        WHEN decoded
        THEN the corporate ID is kept and only the name is unset.
        """
        buffer = (
            other_name(CORPORATE_ID_INDICATOR, CNPJ.encode())
            + RESPONSIBLE_NAME_INDICATOR
            + b"\xa0\x07\x04\x40MARIA"
        )
        identity = ResultAssertions.assert_success(decoder.decode(buffer))
        assert identity == TaxpayerIdentity(tax_id=CNPJ)


class TestCertificates:
    def test_corporate_certificate(self, decoder: ExtensionDecoder, corporate_certificate) -> None:
        """
        GIVEN an e-CNPJ style certificate
        WHEN its subject alternative name is decoded
        THEN the CNPJ, the responsible person's CPF and name are recovered.
        """
        certificate, _ = corporate_certificate
        value = extension_value(certificate)
        assert value is not None
        identity = ResultAssertions.assert_success(decoder.decode(value))
        assert identity == TaxpayerIdentity(
            tax_id=CNPJ, individual_tax_id=CPF, individual_name=RESPONSIBLE_NAME
        )

    def test_individual_certificate(self, decoder: ExtensionDecoder, individual_certificate) -> None:
        certificate, _ = individual_certificate
        identity = ResultAssertions.assert_success(decoder.decode(extension_value(certificate)))
        assert identity.tax_id == HOLDER_CPF
        assert identity.individual_tax_id is None
        assert identity.individual_name is None

    def test_certificate_without_extension(self, plain_certificate) -> None:
        certificate, _ = plain_certificate
        assert extension_value(certificate) is None
