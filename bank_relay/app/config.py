"""
Configuration module for the Bank Relay service.

This module uses Pydantic Settings to load and validate environment variables
for the inbound shared secret, the per-bank client certificates used for
mTLS, upstream hostnames and timeouts, and server/CORS settings.

Environment variables are loaded from .env file or system environment.
Certificates and keys are supplied base64-encoded (the PEM file contents run
through ``base64``) so they fit in a single environment variable.
"""

import base64
import binascii
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Settings are read once by the application factory and handed to the
    credential store, authenticator and executor explicitly.
    """

    # =========================================================================
    # Inbound Authentication
    # =========================================================================

    PROXY_SECRET: SecretStr = Field(
        ...,
        description="Shared secret every forwarding request must present",
    )

    PROXY_SECRET_HEADER: str = Field(
        default="X-Proxy-Secret",
        description="Inbound header carrying the shared secret",
        min_length=1,
    )

    # =========================================================================
    # Banco Inter (mTLS identity)
    # =========================================================================

    INTER_CERTIFICATE_BASE64: Optional[SecretStr] = Field(
        None,
        description="Base64 of the Inter client certificate PEM",
    )

    INTER_KEY_BASE64: Optional[SecretStr] = Field(
        None,
        description="Base64 of the Inter client private key PEM",
    )

    INTER_HOSTNAME: str = Field(
        default="cdpj.partners.bancointer.com.br",
        description="Inter production API hostname",
    )

    INTER_STAGING_HOSTNAME: Optional[str] = Field(
        None,
        description="Inter sandbox hostname (Inter routes are production-only when unset)",
    )

    # =========================================================================
    # Sicoob (mTLS identity)
    # =========================================================================

    SICOOB_CERTIFICATE_BASE64: Optional[SecretStr] = Field(
        None,
        description="Base64 of the Sicoob client certificate PEM",
    )

    SICOOB_KEY_BASE64: Optional[SecretStr] = Field(
        None,
        description="Base64 of the Sicoob client private key PEM",
    )

    SICOOB_HOSTNAME: str = Field(
        default="api.sicoob.com.br",
        description="Sicoob production API hostname",
    )

    SICOOB_STAGING_HOSTNAME: Optional[str] = Field(
        default="sandbox.sicoob.com.br",
        description="Sicoob sandbox API hostname",
    )

    # =========================================================================
    # Forwarding Behaviour
    # =========================================================================

    ENVIRONMENT_HEADER: str = Field(
        default="X-Bank-Environment",
        description="Inbound header selecting production or staging upstream",
        min_length=1,
    )

    UPSTREAM_TIMEOUT_SECONDS: float = Field(
        default=30.0,
        description="Deadline for a whole upstream exchange, also applied to each read, write and pool wait",
        ge=1,
        le=300,
    )

    UPSTREAM_CONNECT_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="Timeout for TCP connect plus TLS handshake",
        ge=1,
        le=120,
    )

    UPSTREAM_CA_BUNDLE: Optional[str] = Field(
        default=None,
        description="PEM bundle trusted for upstream server certificates instead of the system store",
    )

    EXPOSE_UPSTREAM_ERRORS: bool = Field(
        default=True,
        description="Return transport error messages to callers instead of a generic message",
    )

    # =========================================================================
    # Server Configuration
    # =========================================================================

    HOST: str = Field(
        default="0.0.0.0",
        description="Host to bind the relay server",
    )

    PORT: int = Field(
        default=3000,
        description="Port to bind the relay server",
        ge=1,
        le=65535,
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    ALLOWED_ORIGINS: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins",
    )

    # =========================================================================
    # Pydantic Settings Configuration
    # =========================================================================

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def allowed_origins_list(self) -> List[str]:
        """
        Parse and return ALLOWED_ORIGINS as a list.

        Returns:
            List of allowed origin URLs, or empty list if not configured.
        """
        return [
            origin.strip()
            for origin in self.ALLOWED_ORIGINS.split(",")
            if origin.strip()
        ]

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("PROXY_SECRET")
    @classmethod
    def validate_proxy_secret(cls, v: SecretStr) -> SecretStr:
        if not v.get_secret_value().strip():
            raise ValueError("PROXY_SECRET must not be empty")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """
        Validate LOG_LEVEL is a standard logging level name.

        Raises:
            ValueError: If the level is not recognised
        """
        allowed_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        level = v.strip().upper()

        if level not in allowed_levels:
            raise ValueError(
                f"LOG_LEVEL must be one of {allowed_levels}, got: {v}"
            )

        return level

    @field_validator("INTER_STAGING_HOSTNAME", "SICOOB_STAGING_HOSTNAME", "UPSTREAM_CA_BUNDLE", mode="before")
    @classmethod
    def blank_value_is_unset(cls, v: Optional[str]) -> Optional[str]:
        if isinstance(v, str) and not v.strip():
            return None
        return v


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    Only the application factory calls this; components receive the
    resulting object explicitly so tests can build isolated instances.

    Raises:
        ValidationError: If PROXY_SECRET is missing or any value is invalid.
    """
    return Settings()


# =============================================================================
# Configuration Helpers
# =============================================================================

def _credential_pairs(settings: Settings):
    return {
        "inter": (settings.INTER_CERTIFICATE_BASE64, settings.INTER_KEY_BASE64),
        "sicoob": (settings.SICOOB_CERTIFICATE_BASE64, settings.SICOOB_KEY_BASE64),
    }


def _is_set(value: Optional[SecretStr]) -> bool:
    return value is not None and bool(value.get_secret_value().strip())


def validate_configuration(settings: Settings) -> dict:
    """
    Validate configuration settings and return a status report.

    Called during application startup. Missing credentials are warnings
    rather than errors: a bank without credentials fails per request with
    a configuration error, and the rest of the service keeps working.

    Returns:
        Dictionary with validation status, errors and warnings.

    Example:
        >>> status = validate_configuration(get_settings())
        >>> if not status["valid"]:
        ...     print(status["errors"])
    """
    errors = []
    warnings = []

    if len(settings.PROXY_SECRET.get_secret_value()) < 16:
        warnings.append("PROXY_SECRET is shorter than recommended (16+ chars)")

    for bank, (certificate, key) in _credential_pairs(settings).items():
        has_certificate = _is_set(certificate)
        has_key = _is_set(key)

        if not has_certificate and not has_key:
            warnings.append(f"No client certificate configured for {bank}")
        elif has_certificate != has_key:
            missing = "key" if has_certificate else "certificate"
            warnings.append(f"{bank} client {missing} is not configured")

        for label, value in (("certificate", certificate), ("key", key)):
            if not _is_set(value):
                continue
            try:
                base64.b64decode("".join(value.get_secret_value().split()), validate=True)
            except (binascii.Error, ValueError):
                errors.append(f"{bank} client {label} is not valid base64")

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
    }
