from app.schemas.auth import (
    DisableTwoFactorRequest,
    EnableTwoFactorRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    PasswordResetRequest,
    ProfileResponse,
    RefreshTokenRequest,
    RefreshTokenResponse,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    TokenPair,
    TwoFactorSetupResponse,
    UserProfile,
    VerifyEmailRequest,
)

__all__ = [
    "DisableTwoFactorRequest",
    "EnableTwoFactorRequest",
    "LoginRequest",
    "LoginResponse",
    "MessageResponse",
    "PasswordResetRequest",
    "ProfileResponse",
    "RefreshTokenRequest",
    "RefreshTokenResponse",
    "RegisterRequest",
    "RegisterResponse",
    "ResetPasswordRequest",
    "TokenPair",
    "TwoFactorSetupResponse",
    "UserProfile",
    "VerifyEmailRequest",
]
