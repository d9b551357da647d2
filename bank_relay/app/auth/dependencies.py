"""
Inbound shared-secret authentication.

Every forwarding router declares ``require_proxy_secret`` as a router-level
dependency, so the check runs before body parsing and before any upstream
work for every route it guards.
"""

import hmac
import logging
from typing import Optional

from fastapi import Request

from ..errors import AuthenticationError

logger = logging.getLogger(__name__)


class SharedSecretAuthenticator:
    """
    Compares a presented secret with the process-wide expected secret.

    Args:
        expected_secret: Secret callers must present
        header_name: Inbound header carrying it
    """

    def __init__(self, expected_secret: str, header_name: str = "X-Proxy-Secret"):
        if not expected_secret:
            raise ValueError("expected_secret must not be empty")
        self._expected = expected_secret.encode("utf-8")
        self.header_name = header_name

    def verify(self, provided: Optional[str]) -> None:
        """
        Raises:
            AuthenticationError: If the secret is absent or does not match
        """
        if not provided:
            raise AuthenticationError("Missing proxy secret")
        if not hmac.compare_digest(provided.encode("utf-8"), self._expected):
            raise AuthenticationError("Invalid proxy secret")


def require_proxy_secret(request: Request) -> None:
    """
    Dependency that ensures requests include the expected shared secret.
    """
    authenticator: SharedSecretAuthenticator = request.app.state.relay.authenticator
    provided = request.headers.get(authenticator.header_name)

    try:
        authenticator.verify(provided)
    except AuthenticationError as e:
        logger.warning(
            f"Rejected {request.method} {request.url.path}: {e}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "client": request.client.host if request.client else None,
            },
        )
        raise
