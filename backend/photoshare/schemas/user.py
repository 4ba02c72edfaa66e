"""User and session schemas"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime


class UserLogin(BaseModel):
    """User login schema"""
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1)
    remember: bool = False


class UserRegister(BaseModel):
    """User registration schema"""
    email: str = Field(..., min_length=3, max_length=255)
    name: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=8)
    remember: bool = False

    @field_validator('email')
    @classmethod
    def email_shape(cls, v):
        """Light email check; delivery is not verified here"""
        v = v.strip().lower()
        local, _, domain = v.partition('@')
        if not local or '.' not in domain:
            raise ValueError('Invalid email address')
        return v


class PasswordChange(BaseModel):
    """Password change schema"""
    current_password: Optional[str] = None
    new_password: str = Field(..., min_length=8)


class UserResponse(BaseModel):
    """User response schema"""
    id: str
    email: str
    name: str
    created_at: Optional[datetime]
    last_login: Optional[datetime]

    class Config:
        from_attributes = True


class TokenResponse(BaseModel):
    """Session response; the tokens themselves travel as cookies"""
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


class GoogleSignIn(BaseModel):
    """Google sign-in schema"""
    id_token: str = Field(..., min_length=1)
    remember: bool = False
