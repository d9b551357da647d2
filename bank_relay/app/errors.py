"""
Relay Exceptions
================

Error taxonomy for the forwarding path. Upstream 4xx/5xx responses are not
errors here: they are relayed to the caller unchanged.

- AuthenticationError: inbound shared secret missing or wrong (401)
- ConfigurationError: a bank credential is missing or malformed (500)
- NetworkError: connect, TLS handshake or transport failure (502)
- UpstreamTimeoutError: the upstream did not answer in time (504)
"""

from typing import Optional


class RelayError(Exception):
    """Base exception for relay errors"""
    pass


class AuthenticationError(RelayError):
    """Inbound request did not present the expected shared secret"""
    pass


class ConfigurationError(RelayError):
    """A credential needed to reach an upstream is absent or cannot be decoded"""

    def __init__(self, message: str, bank: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.bank = bank


class NetworkError(RelayError):
    """
    Transport-level failure while talking to an upstream.

    Attributes:
        message: Underlying error message
        stage: Exchange stage the failure happened in (connecting, sending,
               awaiting-response, buffering-body)
    """

    def __init__(self, message: str, stage: str = "connecting"):
        super().__init__(message)
        self.message = message
        self.stage = stage


class UpstreamTimeoutError(NetworkError):
    """Upstream round-trip exceeded the configured timeout"""
    pass
