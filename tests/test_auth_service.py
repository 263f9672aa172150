from unittest.mock import patch

import pyotp
import pytest
from jose import JWTError, jwt

from app.config import settings
from app.models.user import User
from app.services.auth_service import TOKEN_KIND_ACCESS, decode_token
from app.services.errors import (
    AccountLocked,
    DuplicateEmail,
    InvalidCredentials,
    InvalidOrExpiredToken,
    InvalidRefreshToken,
    InvalidTwoFactorCode,
    NotAuthenticated,
    TooManyAttempts,
    WeakPassword,
)

PASSWORD = "Passw0rd!"


def _wrong_code(secret: str) -> str:
    totp = pyotp.TOTP(secret)
    return next(code for code in ("000000", "111111", "222222") if not totp.verify(code, valid_window=2))


def test_register_then_duplicate(service):
    with patch("app.services.auth_service.send_verify_email"):
        service.register("a@x.com", "Passw0rd!")
        with pytest.raises(DuplicateEmail):
            service.register("a@x.com", "Other1!x")


def test_register_rejects_weak_password(service, db):
    with pytest.raises(WeakPassword):
        service.register("weak@example.com", "alllowercase1!")
    assert db.query(User).count() == 0


def test_login_unknown_email_is_invalid_credentials(service):
    with pytest.raises(InvalidCredentials) as exc_info:
        service.login("nobody@example.com", PASSWORD)
    assert exc_info.value.message == "Invalid credentials"


def test_login_issues_tokens_bound_to_session(service, registry, test_user):
    result = service.login("test@example.com", PASSWORD)

    assert result.requires_two_factor is False
    claims = decode_token(result.tokens.access_token, TOKEN_KIND_ACCESS)
    assert claims["sub"] == test_user.id
    assert claims["email"] == "test@example.com"
    assert claims["sid"] == result.tokens.session_id
    assert registry.list_for_user(test_user.id) == [result.tokens.session_id]


def test_access_and_refresh_tokens_use_distinct_secrets(service, test_user):
    result = service.login("test@example.com", PASSWORD)

    claims = jwt.decode(result.tokens.refresh_token, settings.JWT_REFRESH_SECRET, algorithms=[settings.JWT_ALGORITHM])
    assert claims["type"] == "refresh"
    with pytest.raises(JWTError):
        jwt.decode(result.tokens.refresh_token, settings.JWT_ACCESS_SECRET, algorithms=[settings.JWT_ALGORITHM])


def test_login_locked_account(service, test_user):
    for _ in range(settings.MAX_LOGIN_ATTEMPTS):
        with pytest.raises(InvalidCredentials):
            service.login("test@example.com", "Wr0ngPass!")

    with pytest.raises(AccountLocked):
        service.login("test@example.com", PASSWORD)


def test_login_with_two_factor_requires_code_and_creates_no_session(service, registry, make_user):
    secret = pyotp.random_base32()
    user = make_user("2fa@example.com", two_factor_enabled=True, two_factor_secret=secret)

    result = service.login("2fa@example.com", PASSWORD)

    assert result.requires_two_factor is True
    assert result.tokens is None
    assert registry.list_for_user(user.id) == []


def test_two_factor_failures_do_not_lock_account(service, make_user, db):
    secret = pyotp.random_base32()
    user = make_user("2fa@example.com", two_factor_enabled=True, two_factor_secret=secret)

    for _ in range(settings.MAX_LOGIN_ATTEMPTS):
        with pytest.raises(InvalidTwoFactorCode):
            service.login("2fa@example.com", PASSWORD, two_factor_code=_wrong_code(secret))

    db.refresh(user)
    assert user.failed_login_attempts == 0
    assert user.locked_until is None


def test_two_factor_attempts_are_throttled(service, make_user):
    secret = pyotp.random_base32()
    make_user("2fa@example.com", two_factor_enabled=True, two_factor_secret=secret)

    for _ in range(settings.TWO_FACTOR_MAX_ATTEMPTS):
        with pytest.raises(InvalidTwoFactorCode):
            service.login("2fa@example.com", PASSWORD, two_factor_code=_wrong_code(secret))

    with pytest.raises(TooManyAttempts):
        service.login("2fa@example.com", PASSWORD, two_factor_code=pyotp.TOTP(secret).now())


def test_enable_two_factor_then_login_requires_code(service, test_user, db):
    setup = service.setup_two_factor(test_user.id)
    db.refresh(test_user)
    assert test_user.two_factor_enabled is False

    service.enable_two_factor(test_user.id, setup.secret, pyotp.TOTP(setup.secret).now())

    db.refresh(test_user)
    assert test_user.two_factor_enabled is True
    assert test_user.two_factor_secret == setup.secret
    assert service.login("test@example.com", PASSWORD).requires_two_factor is True


def test_enable_two_factor_wrong_code_is_bad_request(service, test_user):
    secret = pyotp.random_base32()
    with pytest.raises(InvalidTwoFactorCode) as exc_info:
        service.enable_two_factor(test_user.id, secret, _wrong_code(secret))
    assert exc_info.value.status_code == 400


def test_refresh_after_logout_fails(service, test_user):
    tokens = service.login("test@example.com", PASSWORD).tokens
    service.logout(tokens.session_id, test_user.id)

    with pytest.raises(InvalidRefreshToken):
        service.refresh_token(tokens.refresh_token)


def test_refresh_keeps_session_id(service, test_user):
    tokens = service.login("test@example.com", PASSWORD, remember_me=True).tokens

    refreshed = service.refresh_token(tokens.refresh_token)

    assert refreshed.session_id == tokens.session_id
    assert refreshed.refresh_expires_in == settings.JWT_REFRESH_REMEMBER_ME_DAYS * 24 * 3600


def test_refresh_for_deactivated_user_fails(service, test_user, db):
    tokens = service.login("test@example.com", PASSWORD).tokens
    test_user.is_active = False
    db.commit()

    with pytest.raises(InvalidRefreshToken):
        service.refresh_token(tokens.refresh_token)


def test_logout_twice_is_noop(service, registry, test_user):
    tokens = service.login("test@example.com", PASSWORD).tokens
    other = service.login("test@example.com", PASSWORD).tokens

    service.logout(tokens.session_id, test_user.id)
    service.logout(tokens.session_id, test_user.id)

    assert registry.list_for_user(test_user.id) == [other.session_id]


def test_authenticate_access_token_after_logout_all(service, test_user):
    tokens = service.login("test@example.com", PASSWORD).tokens
    principal = service.authenticate_access_token(tokens.access_token)
    assert principal.user_id == test_user.id

    assert service.logout_all(test_user.id) == 1
    with pytest.raises(NotAuthenticated):
        service.authenticate_access_token(tokens.access_token)


def test_max_sessions_keeps_newest(service, registry, test_user):
    logins = [service.login("test@example.com", PASSWORD).tokens for _ in range(settings.MAX_SESSIONS + 1)]

    active = registry.list_for_user(test_user.id)
    assert len(active) == settings.MAX_SESSIONS
    assert logins[0].session_id not in active
    with pytest.raises(NotAuthenticated):
        service.authenticate_access_token(logins[0].access_token)


def test_reset_password_clears_sessions(service, registry, test_user, db):
    service.login("test@example.com", PASSWORD)
    service.login("test@example.com", PASSWORD)
    old_hash = test_user.password_hash

    with patch("app.services.auth_service.send_password_reset_email") as mock_send:
        service.request_password_reset("test@example.com")
    token = mock_send.call_args.args[2]

    service.reset_password(token, "N3wPassw0rd!")

    db.refresh(test_user)
    assert test_user.password_hash != old_hash
    assert registry.list_for_user(test_user.id) == []
    with pytest.raises(InvalidOrExpiredToken):
        service.reset_password(token, "An0therPass!")


def test_second_reset_request_invalidates_first_token(service, test_user):
    with patch("app.services.auth_service.send_password_reset_email") as mock_send:
        service.request_password_reset("test@example.com")
        service.request_password_reset("test@example.com")
    first = mock_send.call_args_list[0].args[2]
    second = mock_send.call_args_list[1].args[2]

    with pytest.raises(InvalidOrExpiredToken):
        service.reset_password(first, "N3wPassw0rd!")
    service.reset_password(second, "N3wPassw0rd!")


def test_register_race_on_same_email_is_duplicate(service, test_user, monkeypatch, db):
    # Both requests passed the existence check before either inserted.
    monkeypatch.setattr("app.services.credential_store.find_by_email", lambda db, email: None)

    with patch("app.services.auth_service.send_verify_email") as send, pytest.raises(DuplicateEmail):
        service.register("test@example.com", "Passw0rd!")

    send.assert_not_called()
    assert db.query(User).filter(User.email == "test@example.com").count() == 1


def test_authenticate_rejects_session_ended_during_request(service, registry, test_user, monkeypatch):
    tokens = service.login("test@example.com", PASSWORD).tokens
    monkeypatch.setattr(registry, "touch", lambda session_id: None)

    with pytest.raises(NotAuthenticated, match="Session expired"):
        service.authenticate_access_token(tokens.access_token)
    with pytest.raises(InvalidRefreshToken):
        service.refresh_token(tokens.refresh_token)
