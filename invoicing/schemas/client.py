"""
Client schemas for API request/response validation.

WHAT: Pydantic schemas for billed clients.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class ClientCreate(BaseModel):
    """Schema for creating a client."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=255, description="Contact name")
    email: EmailStr = Field(..., description="Billing email")
    phone: str = Field(..., min_length=1, max_length=50, description="Phone number")
    address: str = Field(..., min_length=1, description="Postal address")
    company_name: Optional[str] = Field(default=None, max_length=255, description="Company name")


class ClientUpdate(BaseModel):
    """Schema for updating a client (all fields optional)."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(default=None, min_length=1, max_length=50)
    address: Optional[str] = Field(default=None, min_length=1)
    company_name: Optional[str] = Field(default=None, max_length=255)


class ClientResponse(BaseModel):
    """Schema for client response data."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    phone: str
    address: str
    company_name: Optional[str]
    created_at: datetime
    updated_at: datetime


class ClientListResponse(BaseModel):
    """Paginated list response for clients."""

    items: List[ClientResponse]
    total: int
    skip: int
    limit: int
