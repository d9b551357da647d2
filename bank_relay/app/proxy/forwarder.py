"""
Route Forwarder
===============

Glue between bank routers and the mTLS executor: picks the pass-through
headers, resolves the environment from the inbound request, invokes the
executor and turns the buffered upstream response into a FastAPI Response
with the same status code and body bytes.
"""

import json
import logging
from typing import Any, Dict, Optional, Tuple
from urllib.parse import quote

from fastapi import Request, Response

from ..credentials import Bank, Environment
from ..forwarding import ForwardResponse, body_headers

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

# Inbound headers copied verbatim to the upstream, per bank.
PASSTHROUGH_HEADERS: Dict[Bank, Tuple[str, ...]] = {
    Bank.INTER: ("Authorization", "x-conta-corrente"),
    Bank.SICOOB: ("Authorization", "client_id"),
}

BODYLESS_METHODS = ("GET", "HEAD")


def encode_json(payload: Any) -> bytes:
    """Compact UTF-8 JSON, the same bytes a JavaScript client would send."""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def resolve_environment(request: Request) -> Environment:
    header_name = request.app.state.relay.settings.ENVIRONMENT_HEADER
    return Environment.resolve(request.headers.get(header_name))


def build_upstream_headers(request: Request, bank: Bank) -> Dict[str, str]:
    """
    Copy the bank's pass-through headers from the inbound request.

    The Authorization header is relayed unmodified; bearer tokens are never
    inspected or refreshed here.
    """
    headers = {}
    for name in PASSTHROUGH_HEADERS.get(bank, ("Authorization",)):
        value = request.headers.get(name)
        if value is not None:
            headers[name] = value
    return headers


def relay_response(forwarded: ForwardResponse) -> Response:
    """Inbound response with the upstream status and body bytes unchanged."""
    headers = {}
    content_encoding = forwarded.headers.get("content-encoding")
    if content_encoding:
        headers["Content-Encoding"] = content_encoding

    return Response(
        content=forwarded.body,
        status_code=forwarded.status_code,
        media_type=forwarded.content_type,
        headers=headers,
    )


async def relay(
    request: Request,
    bank: Bank,
    method: str,
    path: str,
    body: Optional[bytes] = None,
    content_type: str = JSON_CONTENT_TYPE,
) -> Response:
    """
    Forward one request to ``bank`` and relay the upstream answer.

    Args:
        request: Inbound request (headers and environment selector)
        bank: Target bank
        method: Upstream HTTP method
        path: Encoded upstream path, query included
        body: Raw body bytes, or None
        content_type: Content-Type declared when a body is sent

    Returns:
        Response mirroring the upstream status code and body
    """
    executor = request.app.state.relay.executor
    environment = resolve_environment(request)

    headers = build_upstream_headers(request, bank)
    if body is not None:
        headers.update(body_headers(body, content_type))

    logger.debug(
        f"Forwarding {method} {path.split('?', 1)[0]} to {bank.value} ({environment.value})",
        extra={
            "bank": bank.value,
            "environment": environment.value,
            "method": method,
            "path": path.split("?", 1)[0],
        },
    )

    forwarded = await executor.execute(bank, environment, path, method, headers, body)
    return relay_response(forwarded)


# ============================================================================
# Opaque Passthrough
# ============================================================================

def passthrough_path(request: Request, subpath: str) -> str:
    """Upstream path for the passthrough route; the inbound raw query is kept as sent."""
    path = "/" + quote(subpath.lstrip("/"), safe="/")
    query = request.url.query
    if query:
        path = f"{path}?{query}"
    return path


async def passthrough(request: Request, bank: Bank, subpath: str) -> Response:
    """
    Relay any method/path/body to ``bank`` without shape validation.

    Untyped escape hatch: the body is forwarded as
    raw bytes with the inbound Content-Type (JSON when absent), GET and HEAD
    never carry a body, and an empty body is not sent.
    """
    body = None
    if request.method not in BODYLESS_METHODS:
        body = await request.body() or None

    content_type = request.headers.get("content-type") or JSON_CONTENT_TYPE

    return await relay(
        request,
        bank,
        request.method,
        passthrough_path(request, subpath),
        body,
        content_type,
    )
