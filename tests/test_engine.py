"""
Test Suite for the Decoder Engine, Input Detection and CLI
==========================================================
End-to-end runs over generated PDFs, images and payload files.
"""

from __future__ import annotations

import json
import logging

import pytest
from click.testing import CliRunner

from covid_qr.cli import cli
from covid_qr.detect import detect_input_type
from covid_qr.engine import PUBLIC_KEY_ENV, DecoderConfig, DecoderEngine
from covid_qr.errors import (
    CryptoOperationError,
    InvalidPublicKeyError,
    MalformedFieldError,
    PdfOpenError,
    QrNotFoundError,
    UnknownEnvelopeVersionError,
    UnsupportedInputError,
)
from covid_qr.models import FieldName, InputType

from .conftest import RECORD_LINE, qr_image


@pytest.fixture
def engine(verifier):
    return DecoderEngine(DecoderConfig(log_level="WARNING"), verifier=verifier)


@pytest.fixture
def key_file(tmp_path, public_pem):
    path = tmp_path / "issuer.pem"
    path.write_bytes(public_pem)
    return path


@pytest.fixture
def inputs(tmp_path, pdf_builder, certificate_image, certificate_text, signed_record):
    """One file per supported input type, all carrying the same record."""
    png = tmp_path / "certificate.png"
    certificate_image.save(png)

    b64 = tmp_path / "certificate.txt"
    b64.write_text(certificate_text + "\n")

    encrypted = tmp_path / "certificate.bin"
    encrypted.write_bytes(signed_record)

    plaintext = tmp_path / "record.txt"
    plaintext.write_text(RECORD_LINE + "\n")

    return {
        InputType.PDF: pdf_builder([[("gray1", certificate_image)]]),
        InputType.IMAGE: png,
        InputType.BASE64: b64,
        InputType.ENCRYPTED: encrypted,
        InputType.PLAINTEXT: plaintext,
    }


# ═══════════════════════════════════════════════════════════════════════════════
# ENGINE TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestDecoderEngine:
    """Test the composed pipeline."""

    @pytest.mark.parametrize("input_type", list(InputType))
    def test_decode_each_input(self, engine, inputs, input_type):
        result = engine.decode(inputs[input_type], input_type)

        assert result.input_type == input_type
        assert result.record.id == 123456
        assert result.record.names == "Anna Kowalska"
        assert result.plaintext.rstrip("\n") == RECORD_LINE

    @pytest.mark.parametrize("input_type", list(InputType))
    def test_decode_autodetect(self, engine, inputs, input_type):
        result = engine.decode(inputs[input_type])
        assert result.input_type == input_type
        assert result.record.vaccine_type == "321"

    def test_pdf_end_to_end(self, engine, pdf_builder, certificate_image):
        # A masked decoy and a QR-less image come before the real code
        path = pdf_builder([
            [("masked", qr_image("1;AAAA")), ("gray8", qr_image("hello"))],
            [("gray1", certificate_image)],
        ])
        ciphertext = engine.from_pdf(path)
        record = engine.decode_ciphertext(ciphertext)
        assert record.short_birthdate.day == 17
        assert record.short_birthdate.month == 4

    def test_pdf_stops_at_first_payload(self, engine, pdf_builder, certificate_image, signed_record):
        path = pdf_builder([
            [("gray8", certificate_image)],
            [("gray8", qr_image("1;AQID"))],
        ])
        assert engine.from_pdf(path) == signed_record

    def test_pdf_without_qr(self, engine, pdf_builder):
        path = pdf_builder([[("gray8", qr_image("x").resize((10, 10)))]])
        with pytest.raises(QrNotFoundError):
            engine.from_pdf(path)

    def test_pdf_reports_qr_failure(self, engine, pdf_builder):
        path = pdf_builder([[("gray8", qr_image("9;AAAA"))]])
        with pytest.raises(UnknownEnvelopeVersionError):
            engine.from_pdf(path)

    def test_pdf_open_error(self, engine, tmp_path):
        path = tmp_path / "absent.pdf"
        with pytest.raises(PdfOpenError):
            engine.decode(path, InputType.PDF)

    def test_wrong_key(self, inputs):
        engine = DecoderEngine(DecoderConfig(log_level="WARNING"))
        with pytest.raises(CryptoOperationError):
            engine.decode(inputs[InputType.ENCRYPTED], InputType.ENCRYPTED)

    def test_malformed_plaintext(self, engine, signer):
        with pytest.raises(MalformedFieldError) as exc_info:
            engine.decode_ciphertext(signer(b"123;2"))
        assert exc_info.value.field == FieldName.VERSION

    def test_from_plaintext(self, engine):
        assert engine.from_plaintext(RECORD_LINE).id == 123456

    def test_public_key_from_config(self, key_file, signed_record):
        engine = DecoderEngine(DecoderConfig(public_key_path=str(key_file)))
        assert engine.decode_ciphertext(signed_record).id == 123456

    def test_public_key_from_env(self, monkeypatch, key_file):
        monkeypatch.setenv(PUBLIC_KEY_ENV, str(key_file))
        assert DecoderConfig().public_key_path == str(key_file)

    def test_ciphertext_size_follows_key(self, engine):
        assert engine.ciphertext_size == 256
        engine.config.ciphertext_size = 128
        assert engine.ciphertext_size == 128

    def test_log_file(self, tmp_path, verifier):
        log_file = tmp_path / "logs" / "decoder.log"
        DecoderEngine(
            DecoderConfig(log_level="INFO", log_file=str(log_file)),
            verifier=verifier,
        )
        assert log_file.exists()

    def test_close_releases_log_file(self, tmp_path, verifier):
        package_logger = logging.getLogger("covid_qr")
        engines = [
            DecoderEngine(
                DecoderConfig(log_level="INFO", log_file=str(tmp_path / f"run{n}.log")),
                verifier=verifier,
            )
            for n in range(2)
        ]
        assert sum(isinstance(h, logging.FileHandler) for h in package_logger.handlers) == 2

        for engine in engines:
            engine.close()
        assert not any(isinstance(h, logging.FileHandler) for h in package_logger.handlers)

    def test_bad_key_file_releases_log_file(self, tmp_path):
        bad_key = tmp_path / "bad.pem"
        bad_key.write_text("not a key")
        config = DecoderConfig(public_key_path=str(bad_key), log_file=str(tmp_path / "run.log"))

        with pytest.raises(InvalidPublicKeyError):
            DecoderEngine(config)
        handlers = logging.getLogger("covid_qr").handlers
        assert not any(isinstance(h, logging.FileHandler) for h in handlers)


# ═══════════════════════════════════════════════════════════════════════════════
# INPUT DETECTION TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestDetectInputType:
    """Test content sniffing."""

    @pytest.mark.parametrize("input_type", list(InputType))
    def test_detect(self, inputs, input_type):
        assert detect_input_type(inputs[input_type]) == input_type

    def test_ciphertext_size_configurable(self, tmp_path):
        path = tmp_path / "short.bin"
        path.write_bytes(b"\x00\x01" * 64)
        assert detect_input_type(path, ciphertext_size=128) == InputType.ENCRYPTED

    def test_unknown_text(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("no separators here")
        with pytest.raises(UnsupportedInputError):
            detect_input_type(path)

    def test_unknown_binary(self, tmp_path):
        path = tmp_path / "blob.bin"
        path.write_bytes(b"\xff\xfe\x00" * 5)
        with pytest.raises(UnsupportedInputError):
            detect_input_type(path)


# ═══════════════════════════════════════════════════════════════════════════════
# CLI TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestCli:
    """Test the click command line."""

    def test_decode_plaintext(self, inputs):
        runner = CliRunner()
        result = runner.invoke(cli, ["decode", "--plaintext", str(inputs[InputType.PLAINTEXT])])

        assert result.exit_code == 0, result.output
        assert "Expired vaccination certificate" in result.output
        assert "Anna Kowalska" in result.output

    def test_decode_auto_json(self, inputs, key_file):
        runner = CliRunner()
        result = runner.invoke(cli, [
            "decode", str(inputs[InputType.PDF]),
            "--public-key", str(key_file),
            "--json-output",
        ])

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["input_type"] == "pdf"
        assert data["record"]["id"] == 123456
        assert data["record"]["issue_date"] == "2021-01-20"
        assert data["record"]["short_birthdate"] == {"day": 17, "month": 4, "year": None}
        assert data["expired"] is True

    def test_decode_requires_one_input(self, inputs):
        runner = CliRunner()

        result = runner.invoke(cli, ["decode"])
        assert result.exit_code == 2

        result = runner.invoke(cli, [
            "decode",
            "--plaintext", str(inputs[InputType.PLAINTEXT]),
            "--image", str(inputs[InputType.IMAGE]),
        ])
        assert result.exit_code == 2

    def test_decode_bad_signature(self, inputs):
        runner = CliRunner()
        result = runner.invoke(cli, ["decode", "--encrypted", str(inputs[InputType.ENCRYPTED])])

        assert result.exit_code == 1
        assert "Error (crypto)" in result.output

    def test_decode_malformed_record(self, tmp_path):
        path = tmp_path / "record.txt"
        path.write_text("123;1;12-21-42")

        runner = CliRunner()
        result = runner.invoke(cli, ["decode", "-r", str(path)])

        assert result.exit_code == 1
        assert "dataWydania" in result.output

    def test_decode_closes_log_file(self, inputs, tmp_path):
        log_file = tmp_path / "cli.log"
        runner = CliRunner()
        result = runner.invoke(cli, [
            "decode", "--plaintext", str(inputs[InputType.PLAINTEXT]),
            "--log-level", "INFO",
            "--log-file", str(log_file),
        ])

        assert result.exit_code == 0, result.output
        assert "Decoded certificate 123456" in log_file.read_text()
        handlers = logging.getLogger("covid_qr").handlers
        assert not any(isinstance(h, logging.FileHandler) for h in handlers)

    def test_info(self, pdf_builder, certificate_image):
        path = pdf_builder([[("masked", qr_image("1;AAAA")), ("gray1", certificate_image)]])

        runner = CliRunner()
        result = runner.invoke(cli, ["info", str(path)])

        assert result.exit_code == 0, result.output
        assert "Total:" in result.output
        assert "2 images" in result.output

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert "1.0.0" in result.output

