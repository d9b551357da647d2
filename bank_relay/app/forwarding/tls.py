"""
Client TLS context construction.

The standard library only loads client certificates from files, so the
decoded PEM pair is written to a private temporary directory for the
duration of ``load_cert_chain`` and removed immediately afterwards.
"""

import os
import ssl
import tempfile
from typing import Optional

from ..errors import ConfigurationError


def _write_private(path: str, data: bytes) -> None:
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    with os.fdopen(fd, "wb") as handle:
        handle.write(data)


def build_client_ssl_context(
    certificate: bytes,
    key: bytes,
    bank: str = "",
    cafile: Optional[str] = None,
) -> ssl.SSLContext:
    """
    Build a TLS client context presenting the given certificate/key pair.

    Server certificates are verified against the system trust store, or
    only against ``cafile`` when given, with hostname checking enabled.

    Args:
        certificate: Client certificate PEM bytes
        key: Matching private key PEM bytes
        bank: Bank name for error messages
        cafile: Optional PEM bundle replacing the system trust store

    Returns:
        Configured ssl.SSLContext

    Raises:
        ConfigurationError: If the key does not match the certificate or the
                            PEM data cannot be loaded
    """
    try:
        context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH, cafile=cafile)
    except OSError as e:
        raise ConfigurationError(f"Upstream CA bundle {cafile} cannot be loaded: {e}", bank=bank or None) from e
    context.minimum_version = ssl.TLSVersion.TLSv1_2

    with tempfile.TemporaryDirectory(prefix="bank-relay-") as directory:
        cert_path = os.path.join(directory, "client.crt")
        key_path = os.path.join(directory, "client.key")
        _write_private(cert_path, certificate)
        _write_private(key_path, key)

        try:
            context.load_cert_chain(certfile=cert_path, keyfile=key_path)
        except ssl.SSLError as e:
            raise ConfigurationError(
                f"{bank or 'upstream'} client certificate and key cannot be loaded: {e}",
                bank=bank or None,
            ) from e

    return context
