from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional

from marketplace.models.user import UserRole


class RegisterRequest(BaseModel):
    """Schema for registering an account."""
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(..., min_length=6, max_length=128)
    role: UserRole = Field(default=UserRole.USER, description="VILLAGER sells, USER buys")
    farm_name: Optional[str] = Field(None, max_length=255)
    address: Optional[str] = Field(None, max_length=500)
    contact_info: Optional[str] = Field(None, max_length=255)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class LoginRequest(BaseModel):
    """Schema for logging in."""
    email: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class UserResponse(BaseModel):
    """Public view of an account."""
    id: int
    email: str
    role: UserRole
    farm_name: Optional[str] = None
    address: Optional[str] = None
    contact_info: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class RegisterResponse(UserResponse):
    message: str


class TokenResponse(BaseModel):
    """Access token returned by login and refresh; the refresh token travels in a cookie."""
    access_token: str
    token_type: str = "bearer"
    user: UserResponse
