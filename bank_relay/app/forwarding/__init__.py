"""
Forwarding Package
==================

The mTLS forwarding core shared by every bank router.

Main Components:
----------------
- models.py: ForwardRequest / ForwardResponse values
- tls.py: client SSLContext construction from PEM bytes
- executor.py: MTLSExecutor, one buffered round-trip per call
- paths.py: encoded upstream path and body header helpers
"""

from .executor import MTLSExecutor, default_transport
from .models import ForwardRequest, ForwardResponse
from .paths import body_headers, upstream_path
from .tls import build_client_ssl_context

__all__ = [
    "MTLSExecutor",
    "default_transport",
    "ForwardRequest",
    "ForwardResponse",
    "body_headers",
    "upstream_path",
    "build_client_ssl_context",
]
