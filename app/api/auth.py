from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, Request, status

from app.config import settings
from app.dependencies import (
    get_auth_service,
    get_client_ip,
    get_current_principal,
    get_user_agent,
    rate_limit,
    require_verified_email,
)
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
from app.services.auth_service import AuthService, AuthTokens, Principal
from app.services.email_service import notify_login

router = APIRouter()

FIFTEEN_MINUTES = 15 * 60
ONE_HOUR = 60 * 60


def _token_pair(tokens: AuthTokens) -> TokenPair:
    return TokenPair(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        token_type="bearer",
        expires_in=tokens.expires_in,
        refresh_expires_in=tokens.refresh_expires_in,
    )


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
    dependencies=[Depends(rate_limit("register", 5, FIFTEEN_MINUTES))],
)
def register(
    body: RegisterRequest,
    auth_service: Annotated[AuthService, Depends(get_auth_service)],
):
    """Register a new user and send an email verification link."""
    user = auth_service.register(
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
    )
    return RegisterResponse(
        message="User registered successfully. Please check your email for verification.",
        user=UserProfile.model_validate(user),
    )


@router.post(
    "/login",
    response_model=LoginResponse,
    response_model_exclude_unset=True,
    summary="Login and get access/refresh tokens",
    dependencies=[Depends(rate_limit("login", 10, FIFTEEN_MINUTES))],
)
def login(
    body: LoginRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    auth_service: Annotated[AuthService, Depends(get_auth_service)],
):
    """Login with email/password (+ TOTP code when enabled)."""
    result = auth_service.login(
        email=body.email,
        password=body.password,
        remember_me=body.remember_me,
        two_factor_code=body.two_factor_code,
    )
    if result.requires_two_factor:
        return LoginResponse(message="Two-factor authentication required", requires_two_factor=True)

    if settings.LOGIN_NOTIFICATIONS_ENABLED:
        background_tasks.add_task(
            notify_login,
            result.user["email"],
            result.user["first_name"],
            get_client_ip(request),
            get_user_agent(request),
        )

    return LoginResponse(
        message="Login successful",
        user=UserProfile(**result.user),
        tokens=_token_pair(result.tokens),
    )


@router.post(
    "/refresh-token",
    response_model=RefreshTokenResponse,
    summary="Refresh the access/refresh token pair",
)
def refresh_token(
    body: RefreshTokenRequest,
    auth_service: Annotated[AuthService, Depends(get_auth_service)],
):
    tokens = auth_service.refresh_token(body.refresh_token)
    return RefreshTokenResponse(message="Token refreshed successfully", tokens=_token_pair(tokens))


@router.post("/logout", response_model=MessageResponse, summary="End the current session")
def logout(
    principal: Annotated[Principal, Depends(get_current_principal)],
    auth_service: Annotated[AuthService, Depends(get_auth_service)],
):
    auth_service.logout(principal.session_id, principal.user_id)
    return MessageResponse(message="Logout successful")


@router.post("/logout-all", response_model=MessageResponse, summary="End every session of the user")
def logout_all(
    principal: Annotated[Principal, Depends(get_current_principal)],
    auth_service: Annotated[AuthService, Depends(get_auth_service)],
):
    auth_service.logout_all(principal.user_id)
    return MessageResponse(message="Logged out from all devices")


@router.get("/profile", response_model=ProfileResponse, summary="Get current user profile")
def profile(
    principal: Annotated[Principal, Depends(get_current_principal)],
    auth_service: Annotated[AuthService, Depends(get_auth_service)],
):
    return ProfileResponse(user=UserProfile(**auth_service.get_profile(principal.user_id)))


@router.post("/verify-email", response_model=MessageResponse, summary="Confirm email verification token")
def verify_email(
    body: VerifyEmailRequest,
    auth_service: Annotated[AuthService, Depends(get_auth_service)],
):
    auth_service.verify_email(body.token)
    return MessageResponse(message="Email verified successfully")


@router.post(
    "/request-password-reset",
    response_model=MessageResponse,
    summary="Request password reset email",
    dependencies=[Depends(rate_limit("request_password_reset", 3, ONE_HOUR))],
)
def request_password_reset(
    body: PasswordResetRequest,
    auth_service: Annotated[AuthService, Depends(get_auth_service)],
):
    """Always succeeds so the response never reveals whether the account exists."""
    auth_service.request_password_reset(body.email)
    return MessageResponse(message="If the account exists, a reset email has been sent.")


@router.post(
    "/reset-password",
    response_model=MessageResponse,
    summary="Reset password by token",
    dependencies=[Depends(rate_limit("reset_password", 5, ONE_HOUR))],
)
def reset_password(
    body: ResetPasswordRequest,
    auth_service: Annotated[AuthService, Depends(get_auth_service)],
):
    """Reset password and log the user out everywhere."""
    auth_service.reset_password(body.token, body.password)
    return MessageResponse(message="Password has been reset")


@router.post("/setup-2fa", response_model=TwoFactorSetupResponse, summary="Start two-factor enrollment")
def setup_two_factor(
    principal: Annotated[Principal, Depends(require_verified_email)],
    auth_service: Annotated[AuthService, Depends(get_auth_service)],
):
    """Return a candidate secret and QR code. Nothing is stored until enable-2fa."""
    setup = auth_service.setup_two_factor(principal.user_id)
    return TwoFactorSetupResponse(
        message="Two-factor authentication setup initiated",
        secret=setup.secret,
        provisioning_uri=setup.provisioning_uri,
        qr_code=setup.qr_code,
    )


@router.post("/enable-2fa", response_model=MessageResponse, summary="Enable two-factor authentication")
def enable_two_factor(
    body: EnableTwoFactorRequest,
    principal: Annotated[Principal, Depends(require_verified_email)],
    auth_service: Annotated[AuthService, Depends(get_auth_service)],
):
    auth_service.enable_two_factor(principal.user_id, body.secret, body.token)
    return MessageResponse(message="Two-factor authentication enabled successfully")


@router.post("/disable-2fa", response_model=MessageResponse, summary="Disable two-factor authentication")
def disable_two_factor(
    body: DisableTwoFactorRequest,
    principal: Annotated[Principal, Depends(require_verified_email)],
    auth_service: Annotated[AuthService, Depends(get_auth_service)],
):
    auth_service.disable_two_factor(principal.user_id, body.password)
    return MessageResponse(message="Two-factor authentication disabled successfully")
