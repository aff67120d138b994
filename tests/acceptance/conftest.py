"""
Acceptance test fixtures — a local HTTPS server that requires client certificates.

The server trusts a test CA, demands a client certificate on every
handshake and answers each GET with the client certificate's CN, so a test
can see which identity a TLS context actually presented.
"""

from __future__ import annotations

import http.server
import ssl
import threading
from pathlib import Path

import pytest
from cryptography.hazmat.primitives import serialization

from icp_cert.adapters.tls_channel import DEFAULT_HTTPS_SLOT
from tests.conftest import build_certificate, pem


class _EchoClientHandler(http.server.BaseHTTPRequestHandler):
    def do_GET(self) -> None:  # noqa: N802
        peer = self.connection.getpeercert()
        common_name = next(
            value for rdn in peer["subject"] for key, value in rdn if key == "commonName"
        )
        body = common_name.encode("utf-8")
        self.send_response(200)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args: object) -> None:
        pass


@pytest.fixture(scope="session")
def test_ca():
    return build_certificate("AC Teste Aceitacao", is_ca=True)


@pytest.fixture(scope="session")
def ca_pem(test_ca) -> bytes:
    return pem(test_ca[0])


@pytest.fixture(scope="session")
def mtls_server(tmp_path_factory: pytest.TempPathFactory, test_ca, ca_pem: bytes):
    """Yield the port of a running mutual-TLS server on 127.0.0.1."""
    ca_certificate, ca_key = test_ca
    server_certificate, server_key = build_certificate(
        "localhost", issuer_cn="AC Teste Aceitacao", issuer_key=ca_key, dns_names=["localhost"]
    )
    workdir: Path = tmp_path_factory.mktemp("mtls")
    cert_file = workdir / "server.pem"
    key_file = workdir / "server.key"
    cert_file.write_bytes(pem(server_certificate) + pem(ca_certificate))
    key_file.write_bytes(server_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ))

    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.load_cert_chain(str(cert_file), str(key_file))
    context.load_verify_locations(cadata=ca_pem.decode("ascii"))
    context.verify_mode = ssl.CERT_REQUIRED

    server = http.server.HTTPServer(("127.0.0.1", 0), _EchoClientHandler)
    server.socket = context.wrap_socket(server.socket, server_side=True)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server.server_address[1]
    server.shutdown()
    server.server_close()


@pytest.fixture()
def clean_default_slot():
    """Reset the process-wide HTTPS default after the test."""
    yield DEFAULT_HTTPS_SLOT
    DEFAULT_HTTPS_SLOT.clear()
