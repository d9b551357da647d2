"""
End-to-End Mutual TLS Tests
===========================

Tests for bank_relay/app/forwarding/ against a real local TLS server that
requires a client certificate.

Test Coverage:
--------------
1. The configured bank identity is presented during the handshake
2. Inter and Sicoob identities are never swapped
3. An untrusted server certificate fails at the connecting stage
4. Routes relay through the real TLS transport
"""

import json
import ssl
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer

import httpx
import pytest
from fastapi.testclient import TestClient

from bank_relay.app.credentials import Bank, CredentialStore, Environment
from bank_relay.app.errors import NetworkError
from bank_relay.app.forwarding import MTLSExecutor, default_transport
from bank_relay.app.main import create_app

from conftest import CertificateAuthority, b64

SERVER_IP = "127.0.0.1"


class PeerEchoHandler(BaseHTTPRequestHandler):
    """Answers with the common name of the client certificate it received."""

    def do_GET(self):
        subject = dict(item[0] for item in self.connection.getpeercert()["subject"])
        body = json.dumps({"client": subject["commonName"], "path": self.path}).encode("utf-8")

        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        pass


class LocalPortTransport(httpx.AsyncBaseTransport):
    """Sends every request to the local test port, keeping host and SNI."""

    def __init__(self, inner: httpx.AsyncBaseTransport, port: int):
        self.inner = inner
        self.port = port

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        request.url = request.url.copy_with(port=self.port)
        return await self.inner.handle_async_request(request)

    async def aclose(self) -> None:
        await self.inner.aclose()


@pytest.fixture(scope="module")
def authority():
    return CertificateAuthority("relay-test-ca")


@pytest.fixture(scope="module")
def client_identities(authority):
    return {
        Bank.INTER: authority.issue("inter-client"),
        Bank.SICOOB: authority.issue("sicoob-client"),
    }


@pytest.fixture(scope="module")
def tls_server(authority, tmp_path_factory):
    directory = tmp_path_factory.mktemp("tls-server")
    cert_pem, key_pem = authority.issue("bank-api", server_ip=SERVER_IP)
    (directory / "server.crt").write_bytes(cert_pem)
    (directory / "server.key").write_bytes(key_pem)

    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.load_cert_chain(directory / "server.crt", directory / "server.key")
    context.load_verify_locations(cadata=authority.pem.decode("ascii"))
    context.verify_mode = ssl.CERT_REQUIRED

    server = HTTPServer((SERVER_IP, 0), PeerEchoHandler)
    server.socket = context.wrap_socket(server.socket, server_side=True)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()

    yield server

    server.shutdown()
    server.server_close()


@pytest.fixture
def tls_settings(settings_factory, authority, client_identities, tmp_path):
    """Settings pointing both banks at the local server and trusting the test CA."""
    ca_bundle = tmp_path / "ca.pem"
    ca_bundle.write_bytes(authority.pem)

    def factory(**overrides):
        values = {
            "INTER_CERTIFICATE_BASE64": b64(client_identities[Bank.INTER][0]),
            "INTER_KEY_BASE64": b64(client_identities[Bank.INTER][1]),
            "SICOOB_CERTIFICATE_BASE64": b64(client_identities[Bank.SICOOB][0]),
            "SICOOB_KEY_BASE64": b64(client_identities[Bank.SICOOB][1]),
            "INTER_HOSTNAME": SERVER_IP,
            "SICOOB_HOSTNAME": SERVER_IP,
            "SICOOB_STAGING_HOSTNAME": SERVER_IP,
            "UPSTREAM_CA_BUNDLE": str(ca_bundle),
        }
        values.update(overrides)
        return settings_factory(**values)
    return factory


def tls_executor(settings, port: int) -> MTLSExecutor:
    return MTLSExecutor.from_settings(
        CredentialStore.from_settings(settings),
        settings,
        transport_factory=lambda context: LocalPortTransport(default_transport(context), port),
    )


# ============================================================================
# Client Identity
# ============================================================================

async def test_bank_identity_presented(tls_server, tls_settings):
    executor = tls_executor(tls_settings(), tls_server.server_port)

    response = await executor.execute(Bank.INTER, Environment.PRODUCTION, "/banking/v2/saldo", "GET", {})

    assert response.status_code == 200
    assert json.loads(response.body) == {"client": "inter-client", "path": "/banking/v2/saldo"}


async def test_identities_never_swapped(tls_server, tls_settings):
    executor = tls_executor(tls_settings(), tls_server.server_port)

    sicoob = await executor.execute(Bank.SICOOB, Environment.STAGING, "/x", "GET", {})
    inter = await executor.execute(Bank.INTER, Environment.PRODUCTION, "/x", "GET", {})
    sicoob_again = await executor.execute(Bank.SICOOB, Environment.PRODUCTION, "/x", "GET", {})

    assert json.loads(sicoob.body)["client"] == "sicoob-client"
    assert json.loads(inter.body)["client"] == "inter-client"
    assert json.loads(sicoob_again.body)["client"] == "sicoob-client"


# ============================================================================
# Server Verification
# ============================================================================

async def test_untrusted_server_fails_while_connecting(tls_server, tls_settings, tmp_path):
    other_bundle = tmp_path / "other-ca.pem"
    other_bundle.write_bytes(CertificateAuthority("someone-else").pem)
    executor = tls_executor(
        tls_settings(UPSTREAM_CA_BUNDLE=str(other_bundle)), tls_server.server_port
    )

    with pytest.raises(NetworkError) as exc_info:
        await executor.execute(Bank.INTER, Environment.PRODUCTION, "/x", "GET", {})

    assert exc_info.value.stage == "connecting"


async def test_system_trust_rejects_private_ca(tls_server, tls_settings):
    executor = tls_executor(tls_settings(UPSTREAM_CA_BUNDLE=None), tls_server.server_port)

    with pytest.raises(NetworkError) as exc_info:
        await executor.execute(Bank.SICOOB, Environment.PRODUCTION, "/x", "GET", {})

    assert exc_info.value.stage == "connecting"


# ============================================================================
# Routes
# ============================================================================

def test_route_relays_over_real_tls(tls_server, tls_settings, auth_headers):
    settings = tls_settings()
    client = TestClient(create_app(settings=settings, executor=tls_executor(settings, tls_server.server_port)))

    response = client.get("/sicoob/pix/cob/txid-1", headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == {"client": "sicoob-client", "path": "/pix/api/v2/cob/txid-1"}
