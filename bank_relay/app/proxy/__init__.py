"""
Proxy Package
=============

This package implements authenticated relay endpoints that forward
requests to the upstream banking APIs over mutually authenticated TLS.

Main Components:
----------------
- routes.py: FastAPI routers per bank (/inter, /sicoob)
- forwarder.py: shared relay logic (pass-through headers, environment
  selection, verbatim response relay, opaque passthrough)

Security Features:
------------------
- Shared-secret enforcement before any route logic
- Client certificates injected server-side, never exposed to callers
- Percent-encoding of caller-supplied path and query values

Usage:
------
    from bank_relay.app.proxy import inter_router, sicoob_router
    app.include_router(inter_router)
    app.include_router(sicoob_router)
"""

from .routes import inter_router, sicoob_router

__all__ = ["inter_router", "sicoob_router"]
