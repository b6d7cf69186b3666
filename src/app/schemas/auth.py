"""Pydantic schemas for authentication API endpoints."""

from __future__ import annotations

from pydantic import BaseModel, EmailStr, Field


class LoginRequest(BaseModel):
    """Request schema for operator login."""

    email: EmailStr = Field(..., description="Operator email address")
    password: str = Field(..., min_length=1, description="Operator password")


class TokenResponse(BaseModel):
    """Response schema with access and refresh tokens."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class TokenRefreshRequest(BaseModel):
    """Request schema to refresh an access token."""

    refresh_token: str = Field(..., description="Valid refresh token")


class OperatorResponse(BaseModel):
    """Response schema for the authenticated operator."""

    email: str
    role: str = "operator"
