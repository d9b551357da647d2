"""
Credential Store
================

Holds the mTLS client identity of each supported bank: the encoded client
certificate, the encoded private key, and the hostnames reachable with them.

Identities are immutable after construction. Decoding happens on every call
to ``client_pair`` so nothing decoded is cached between requests; the same
encoded input always yields the same PEM bytes.
"""

import base64
import binascii
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Mapping, Optional, Tuple

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from pydantic import SecretStr

from ..config import Settings
from ..errors import ConfigurationError


class Bank(str, Enum):
    """Upstream banks this relay holds a client identity for."""

    INTER = "inter"
    SICOOB = "sicoob"


class Environment(str, Enum):
    """Upstream environment selected per request."""

    PRODUCTION = "production"
    STAGING = "staging"

    @classmethod
    def resolve(cls, value: Optional[str]) -> "Environment":
        """
        Resolve an inbound header value to an environment.

        Absent or unrecognised values select production; only the known
        staging aliases select staging.

        Example:
            >>> Environment.resolve("Sandbox")
            <Environment.STAGING: 'staging'>
            >>> Environment.resolve(None)
            <Environment.PRODUCTION: 'production'>
        """
        if value is None:
            return cls.PRODUCTION
        if value.strip().lower() in STAGING_ALIASES:
            return cls.STAGING
        return cls.PRODUCTION


STAGING_ALIASES = frozenset({"staging", "sandbox", "homologacao", "uat", "test"})


def _secret_text(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, SecretStr):
        value = value.get_secret_value()
    value = value.strip()
    return value or None


def decode_pem(encoded: Optional[str], label: str, bank: str) -> bytes:
    """
    Decode a base64 transport value into raw PEM bytes.

    Whitespace (line breaks from ``base64`` output) is ignored, any other
    character outside the base64 alphabet is rejected.

    Raises:
        ConfigurationError: If the value is absent, not base64, or does not
                            decode to PEM text
    """
    if not encoded:
        raise ConfigurationError(f"{bank} client {label} is not configured", bank=bank)

    try:
        decoded = base64.b64decode("".join(encoded.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ConfigurationError(
            f"{bank} client {label} is not valid base64: {e}", bank=bank
        ) from e

    if b"-----BEGIN " not in decoded:
        raise ConfigurationError(
            f"{bank} client {label} does not decode to PEM data", bank=bank
        )

    return decoded


@dataclass(frozen=True)
class UpstreamIdentity:
    """
    Client certificate, private key and hostnames for one bank.

    Attributes:
        bank: Bank this identity belongs to
        certificate: Base64 of the client certificate PEM (may be absent)
        key: Base64 of the client private key PEM (may be absent)
        hostname: Production hostname
        staging_hostname: Staging hostname, None when the bank has only one
    """

    bank: Bank
    certificate: Optional[str] = field(default=None, repr=False)
    key: Optional[str] = field(default=None, repr=False)
    hostname: str = ""
    staging_hostname: Optional[str] = None

    @property
    def has_certificate(self) -> bool:
        return bool(self.certificate)

    @property
    def has_key(self) -> bool:
        return bool(self.key)

    @property
    def supports_staging(self) -> bool:
        return self.staging_hostname is not None

    def hostname_for(self, environment: Environment) -> str:
        """Hostname to contact for an environment; production when no staging host exists."""
        if environment is Environment.STAGING and self.staging_hostname:
            return self.staging_hostname
        return self.hostname

    def client_pair(self) -> Tuple[bytes, bytes]:
        """
        Decode and validate the certificate/key pair.

        Returns:
            (certificate PEM bytes, private key PEM bytes)

        Raises:
            ConfigurationError: If either value is absent or malformed
        """
        bank = self.bank.value
        certificate = decode_pem(self.certificate, "certificate", bank)
        key = decode_pem(self.key, "key", bank)

        try:
            x509.load_pem_x509_certificate(certificate)
        except ValueError as e:
            raise ConfigurationError(
                f"{bank} client certificate is not a valid X.509 PEM: {e}", bank=bank
            ) from e

        try:
            serialization.load_pem_private_key(key, password=None)
        except (ValueError, TypeError) as e:
            raise ConfigurationError(
                f"{bank} client key is not a valid unencrypted PEM private key: {e}",
                bank=bank,
            ) from e

        return certificate, key


class CredentialStore:
    """
    Read-only registry of upstream identities keyed by bank.

    No locking: nothing is written after construction.
    """

    def __init__(self, identities: Mapping[Bank, UpstreamIdentity]):
        self._identities: Dict[Bank, UpstreamIdentity] = dict(identities)

    @classmethod
    def from_settings(cls, settings: Settings) -> "CredentialStore":
        """Build the store from environment-backed settings."""
        return cls({
            Bank.INTER: UpstreamIdentity(
                bank=Bank.INTER,
                certificate=_secret_text(settings.INTER_CERTIFICATE_BASE64),
                key=_secret_text(settings.INTER_KEY_BASE64),
                hostname=settings.INTER_HOSTNAME,
                staging_hostname=settings.INTER_STAGING_HOSTNAME,
            ),
            Bank.SICOOB: UpstreamIdentity(
                bank=Bank.SICOOB,
                certificate=_secret_text(settings.SICOOB_CERTIFICATE_BASE64),
                key=_secret_text(settings.SICOOB_KEY_BASE64),
                hostname=settings.SICOOB_HOSTNAME,
                staging_hostname=settings.SICOOB_STAGING_HOSTNAME,
            ),
        })

    def identity(self, bank: Bank) -> UpstreamIdentity:
        try:
            return self._identities[Bank(bank)]
        except (KeyError, ValueError):
            raise ConfigurationError(
                f"No upstream identity registered for {bank}", bank=str(bank)
            ) from None

    def client_pair(self, bank: Bank) -> Tuple[bytes, bytes]:
        """Decoded (certificate, key) for a bank. Raises ConfigurationError."""
        return self.identity(bank).client_pair()

    def hostname(self, bank: Bank, environment: Environment) -> str:
        return self.identity(bank).hostname_for(environment)

    def presence(self) -> Dict[str, Dict[str, bool]]:
        """
        Credential presence per bank, for health checks.

        Never decodes anything.

        Returns:
            {"inter": {"hasCert": bool, "hasKey": bool}, ...}
        """
        return {
            bank.value: {
                "hasCert": identity.has_certificate,
                "hasKey": identity.has_key,
            }
            for bank, identity in self._identities.items()
        }
