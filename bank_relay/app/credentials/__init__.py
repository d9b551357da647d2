"""
Credentials Package

Per-bank mTLS client identities (certificate, private key, hostnames) and
the environment selector used to pick a hostname per request.
"""

from .store import Bank, CredentialStore, Environment, UpstreamIdentity

__all__ = [
    "Bank",
    "CredentialStore",
    "Environment",
    "UpstreamIdentity",
]
