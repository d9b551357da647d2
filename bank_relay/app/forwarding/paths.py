"""
Helpers route handlers use to build ForwardRequest parts.

Caller-supplied values are always percent-encoded: path segments with no
safe characters, query values through ``urlencode``.
"""

from typing import Any, Dict, Mapping, Optional
from urllib.parse import quote, urlencode


def upstream_path(
    base: str,
    *segments: str,
    query: Optional[Mapping[str, Any]] = None,
) -> str:
    """
    Join a fixed upstream base path with encoded segments and query.

    Example:
        >>> upstream_path("/pix/v2/cob", "abc/../x")
        '/pix/v2/cob/abc%2F..%2Fx'
        >>> upstream_path("/banking/v2/extrato", query={"dataInicio": "2024-01-01", "dataFim": None})
        '/banking/v2/extrato?dataInicio=2024-01-01'
    """
    path = base.rstrip("/") or "/"
    for segment in segments:
        path = f"{path.rstrip('/')}/{quote(str(segment), safe='')}"

    if query:
        params = [(name, str(value)) for name, value in query.items() if value is not None]
        if params:
            path = f"{path}?{urlencode(params)}"

    return path


def body_headers(body: bytes, content_type: str) -> Dict[str, str]:
    """Content-Type plus the exact byte length of ``body``."""
    return {
        "Content-Type": content_type,
        "Content-Length": str(len(body)),
    }
