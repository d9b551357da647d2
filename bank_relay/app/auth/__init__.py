"""
Authentication Package

Shared-secret gate in front of every forwarding route. Callers present the
secret in a configurable header (``X-Proxy-Secret`` by default); requests
without it never reach an upstream.
"""

from .dependencies import SharedSecretAuthenticator, require_proxy_secret

__all__ = [
    "SharedSecretAuthenticator",
    "require_proxy_secret",
]
