from pydantic import BaseModel, EmailStr, ConfigDict, Field
from datetime import datetime
from typing import Optional
from uuid import UUID


class UserBase(BaseModel):
    email: EmailStr


class UserCreate(UserBase):
    model_config = ConfigDict(populate_by_name=True)

    password: str = Field(..., min_length=8, max_length=128)
    display_name: Optional[str] = Field(None, alias="displayName", max_length=100)
    locale: str = Field("en", min_length=2, max_length=8)


class UserLogin(UserBase):
    password: str = Field(..., min_length=1, max_length=128)


class UserResponse(UserBase):
    id: UUID
    display_name: Optional[str] = None
    locale: str
    role: str
    email_results_opt_in: bool
    credit_balance: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class PreferencesUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    locale: Optional[str] = Field(None, min_length=2, max_length=8)
    email_results_opt_in: Optional[bool] = Field(None, alias="emailResultsOptIn")


class ProfileUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    display_name: Optional[str] = Field(None, alias="displayName", max_length=100)
    email: Optional[EmailStr] = None


class PasswordChange(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_password: str = Field(..., alias="currentPassword", min_length=1, max_length=128)
    new_password: str = Field(..., alias="newPassword", min_length=8, max_length=128)
