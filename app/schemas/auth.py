from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)
    first_name: str | None = Field(default=None, min_length=1, max_length=50)
    last_name: str | None = Field(default=None, min_length=1, max_length=50)

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {"email": "artist@example.com", "password": "Passw0rd!", "first_name": "Ada", "last_name": "Artist"}
            ]
        }
    )


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)
    remember_me: bool = False
    two_factor_code: str | None = None

    @field_validator("two_factor_code")
    @classmethod
    def validate_two_factor_code(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip().replace(" ", "")
        if v == "":
            return None
        if len(v) != 6 or not v.isdigit():
            raise ValueError("Two-factor code must be 6 digits")
        return v


class RefreshTokenRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


class VerifyEmailRequest(BaseModel):
    token: str = Field(min_length=1)


class PasswordResetRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(min_length=1)
    password: str = Field(min_length=1)


class EnableTwoFactorRequest(BaseModel):
    secret: str = Field(min_length=1)
    token: str = Field(min_length=1)


class DisableTwoFactorRequest(BaseModel):
    password: str = Field(min_length=1)


class UserProfile(BaseModel):
    id: str
    email: str
    first_name: str | None = None
    last_name: str | None = None
    is_verified: bool
    is_active: bool
    two_factor_enabled: bool
    last_login: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    refresh_expires_in: int


class MessageResponse(BaseModel):
    message: str


class RegisterResponse(MessageResponse):
    user: UserProfile


class LoginResponse(MessageResponse):
    user: UserProfile | None = None
    tokens: TokenPair | None = None
    requires_two_factor: bool = False


class RefreshTokenResponse(MessageResponse):
    tokens: TokenPair


class ProfileResponse(BaseModel):
    user: UserProfile


class TwoFactorSetupResponse(MessageResponse):
    secret: str
    provisioning_uri: str
    qr_code: str
