"""
Forward Request / Response Models
=================================

Typed values exchanged between route handlers and the mTLS executor.

ForwardRequest is validated at construction: a request that carries a body
must already declare its exact byte length in ``Content-Length``. The
executor never computes it.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

ALLOWED_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS")


def _has_line_break(value: str) -> bool:
    return "\r" in value or "\n" in value


class ForwardRequest(BaseModel):
    """
    One outbound request to an upstream bank.

    Attributes:
        hostname: Upstream hostname (port 443 is implied)
        path: Upstream path, already encoded, including any query string
        method: HTTP method
        headers: Outbound headers, unique regardless of case
        body: Raw body bytes, opaque to the relay
    """

    model_config = ConfigDict(frozen=True)

    hostname: str = Field(..., min_length=1)
    path: str = Field(..., min_length=1)
    method: str = Field(default="GET")
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Optional[bytes] = Field(default=None)

    @field_validator("hostname")
    @classmethod
    def validate_hostname(cls, v: str) -> str:
        if any(c in v for c in "/:?#@ ") or _has_line_break(v):
            raise ValueError(f"Invalid upstream hostname: {v!r}")
        return v

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError("Upstream path must start with '/'")
        if " " in v or _has_line_break(v):
            raise ValueError("Upstream path must be percent-encoded")
        return v

    @field_validator("method")
    @classmethod
    def validate_method(cls, v: str) -> str:
        method = v.strip().upper()
        if method not in ALLOWED_METHODS:
            raise ValueError(f"Unsupported HTTP method: {v}")
        return method

    @field_validator("headers")
    @classmethod
    def validate_headers(cls, v: Dict[str, str]) -> Dict[str, str]:
        seen = set()
        for name, value in v.items():
            lowered = name.lower()
            if lowered in seen:
                raise ValueError(f"Duplicate header: {name}")
            seen.add(lowered)
            if _has_line_break(name) or _has_line_break(value):
                raise ValueError(f"Header {name} contains a line break")
        return v

    @model_validator(mode="after")
    def validate_content_length(self) -> "ForwardRequest":
        if self.body is None:
            return self

        declared = self.header("Content-Length")
        if declared is None:
            raise ValueError("Content-Length header is required when a body is present")
        if not declared.strip().isdigit() or int(declared) != len(self.body):
            raise ValueError(
                f"Content-Length {declared} does not match body length {len(self.body)}"
            )
        return self

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None

    @property
    def url(self) -> str:
        return f"https://{self.hostname}{self.path}"

    @property
    def path_without_query(self) -> str:
        return self.path.split("?", 1)[0]


@dataclass(frozen=True)
class ForwardResponse:
    """
    Fully buffered upstream response.

    Attributes:
        status_code: Upstream status, relayed unchanged
        headers: Upstream headers (lower-cased names)
        body: Raw body bytes as received
    """

    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def content_type(self) -> Optional[str]:
        return self.headers.get("content-type")
