"""
Shared fixtures for relay tests.

Client identities are real throwaway certificate/key pairs generated with
cryptography, so the executor builds a genuine SSLContext in every test.
The upstream bank is an httpx.MockTransport that records what it receives,
and CertificateAuthority issues chains for the end-to-end TLS tests.
"""

import asyncio
import base64
import ipaddress
import ssl
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

import httpx
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID
from fastapi.testclient import TestClient

from bank_relay.app.config import Settings
from bank_relay.app.credentials import CredentialStore
from bank_relay.app.forwarding import MTLSExecutor
from bank_relay.app.main import create_app

PROXY_SECRET = "test-proxy-secret-0123456789"


def _pem_pair(certificate: x509.Certificate, key: ec.EllipticCurvePrivateKey) -> Tuple[bytes, bytes]:
    cert_pem = certificate.public_bytes(serialization.Encoding.PEM)
    key_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return cert_pem, key_pem


def _key_usage(certificate_authority: bool) -> x509.KeyUsage:
    return x509.KeyUsage(
        digital_signature=True,
        content_commitment=False,
        key_encipherment=False,
        data_encipherment=False,
        key_agreement=False,
        key_cert_sign=certificate_authority,
        crl_sign=certificate_authority,
        encipher_only=False,
        decipher_only=False,
    )


def _builder(subject: x509.Name, issuer: x509.Name, public_key) -> x509.CertificateBuilder:
    now = datetime.now(timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(public_key)
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=30))
    )


def generate_identity(common_name: str) -> Tuple[bytes, bytes]:
    """Self-signed client certificate and its private key, both PEM."""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    certificate = _builder(name, name, key.public_key()).sign(key, hashes.SHA256())
    return _pem_pair(certificate, key)


class CertificateAuthority:
    """
    Throwaway CA for end-to-end TLS tests.

    Certificates carry the extensions strict X.509 verification expects
    (basic constraints, key usage, key identifiers).
    """

    def __init__(self, common_name: str):
        self.key = ec.generate_private_key(ec.SECP256R1())
        self.name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
        self.certificate = (
            _builder(self.name, self.name, self.key.public_key())
            .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
            .add_extension(_key_usage(certificate_authority=True), critical=True)
            .add_extension(x509.SubjectKeyIdentifier.from_public_key(self.key.public_key()), critical=False)
            .sign(self.key, hashes.SHA256())
        )

    @property
    def pem(self) -> bytes:
        return self.certificate.public_bytes(serialization.Encoding.PEM)

    def issue(self, common_name: str, server_ip: Optional[str] = None) -> Tuple[bytes, bytes]:
        """Leaf certificate and key; a server certificate when ``server_ip`` is given."""
        key = ec.generate_private_key(ec.SECP256R1())
        usage = ExtendedKeyUsageOID.SERVER_AUTH if server_ip else ExtendedKeyUsageOID.CLIENT_AUTH
        builder = (
            _builder(
                x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)]),
                self.name,
                key.public_key(),
            )
            .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
            .add_extension(_key_usage(certificate_authority=False), critical=True)
            .add_extension(x509.ExtendedKeyUsage([usage]), critical=False)
            .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
            .add_extension(
                x509.AuthorityKeyIdentifier.from_issuer_public_key(self.key.public_key()),
                critical=False,
            )
        )
        if server_ip:
            builder = builder.add_extension(
                x509.SubjectAlternativeName([x509.IPAddress(ipaddress.ip_address(server_ip))]),
                critical=False,
            )
        return _pem_pair(builder.sign(self.key, hashes.SHA256()), key)


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


class ByteStream(httpx.AsyncByteStream):
    """Response body delivered as a stream, like a real network response."""

    def __init__(self, body: bytes, chunk_size: int = 64, delay: float = 0.0):
        self.body = body
        self.chunk_size = chunk_size
        self.delay = delay

    async def __aiter__(self):
        for start in range(0, len(self.body), self.chunk_size):
            if self.delay:
                await asyncio.sleep(self.delay)
            yield self.body[start:start + self.chunk_size]


class MockUpstream:
    """
    Deterministic stand-in for a bank API.

    Records every request it receives and answers with the configured
    status/body, or raises the configured transport error.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.status_code = 200
        self.body = b"{}"
        self.content_type = "application/json"
        self.error: Optional[Exception] = None
        self.contexts: List[ssl.SSLContext] = []

    def respond(self, status_code: int, body: bytes, content_type: str = "application/json") -> None:
        self.status_code = status_code
        self.body = body
        self.content_type = content_type

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(
            self.status_code,
            headers={"Content-Type": self.content_type},
            stream=ByteStream(self.body),
        )

    def transport(self, ssl_context=None) -> httpx.MockTransport:
        """Transport factory: records the SSLContext it was handed."""
        self.contexts.append(ssl_context)
        return httpx.MockTransport(self.handler)

    @property
    def last(self) -> httpx.Request:
        assert self.requests, "upstream was never called"
        return self.requests[-1]


@pytest.fixture(scope="session")
def inter_identity() -> Tuple[bytes, bytes]:
    return generate_identity("inter-client")


@pytest.fixture(scope="session")
def sicoob_identity() -> Tuple[bytes, bytes]:
    return generate_identity("sicoob-client")


@pytest.fixture
def settings_factory(inter_identity, sicoob_identity):
    """Build isolated Settings; keyword overrides replace the defaults."""
    def factory(**overrides) -> Settings:
        values = {
            "PROXY_SECRET": PROXY_SECRET,
            "INTER_CERTIFICATE_BASE64": b64(inter_identity[0]),
            "INTER_KEY_BASE64": b64(inter_identity[1]),
            "SICOOB_CERTIFICATE_BASE64": b64(sicoob_identity[0]),
            "SICOOB_KEY_BASE64": b64(sicoob_identity[1]),
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)
    return factory


@pytest.fixture
def settings(settings_factory) -> Settings:
    return settings_factory()


@pytest.fixture
def upstream() -> MockUpstream:
    return MockUpstream()


@pytest.fixture
def executor(settings, upstream) -> MTLSExecutor:
    store = CredentialStore.from_settings(settings)
    return MTLSExecutor.from_settings(store, settings, transport_factory=upstream.transport)


@pytest.fixture
def app_factory(upstream):
    """Create an app around the given settings with the mock upstream wired in."""
    def factory(settings: Settings):
        store = CredentialStore.from_settings(settings)
        executor = MTLSExecutor.from_settings(
            store, settings, transport_factory=upstream.transport
        )
        return create_app(settings=settings, executor=executor)
    return factory


@pytest.fixture
def client(app_factory, settings) -> TestClient:
    return TestClient(app_factory(settings))


@pytest.fixture
def auth_headers():
    """Headers every forwarding request needs"""
    return {"X-Proxy-Secret": PROXY_SECRET}
