"""
Data Models Module

This module defines Pydantic models for request/response validation
throughout the relay service.

Models are organized by functional area:
- Inbound payload models for typed bank routes (token requests)
- Health check models (credential presence only)
- Error models
"""

from typing import Dict, Optional

from pydantic import BaseModel, Field

INTER_DEFAULT_SCOPE = "extrato.read boleto-cobranca.read pix.read pix.write cob.read cob.write"


# ============================================================================
# Inbound Payload Models
# ============================================================================

class InterTokenRequest(BaseModel):
    """OAuth client-credentials request relayed to Inter's token endpoint."""
    client_id: str = Field(..., description="Inter application client ID", min_length=1)
    client_secret: str = Field(..., description="Inter application client secret", min_length=1)
    scope: Optional[str] = Field(None, description="Space-separated scopes (defaults to the full banking set)")
    grant_type: str = Field(default="client_credentials", description="OAuth grant type")

    def form_fields(self) -> Dict[str, str]:
        return {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": self.grant_type,
            "scope": self.scope or INTER_DEFAULT_SCOPE,
        }


# ============================================================================
# Health Check Models
# ============================================================================

class CredentialPresence(BaseModel):
    """Whether a bank's certificate and key are configured. Never decoded."""
    hasCert: bool = Field(..., description="Client certificate is configured")
    hasKey: bool = Field(..., description="Client private key is configured")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service health status")
    credentials: Dict[str, CredentialPresence] = Field(..., description="Credential presence per bank")


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Standardized error response model."""
    error: str = Field(..., description="Error type, or the upstream transport message")
    message: Optional[str] = Field(None, description="Human-readable error message")
