"""
Bank Relay Service

mTLS relay in front of the Banco Inter and Sicoob APIs. Callers authenticate
with a shared secret; the relay presents the bank's client certificate,
forwards the request, and returns the upstream status and body unchanged.

Subpackages:
- auth: shared-secret gate
- credentials: per-bank client identities and environment selection
- forwarding: mTLS executor and forward request/response values
- proxy: bank routers
"""
