"""API key schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ApiKeyCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class ApiKeyResponse(BaseModel):
    """Stored key metadata; never includes the raw key"""
    id: str
    name: str
    prefix: str
    minute_limit: int
    daily_limit: int
    last_used_at: Optional[datetime]
    created_at: Optional[datetime]
    minute_usage: int = 0
    daily_usage: int = 0

    class Config:
        from_attributes = True


class ApiKeyCreated(BaseModel):
    """Returned once, at generation or rotation time"""
    key: str
    api_key: ApiKeyResponse
