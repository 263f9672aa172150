from unittest.mock import MagicMock, patch

import pytest

from app.services import email_service


def _configure_smtp(monkeypatch):
    monkeypatch.setenv("SMTP_HOST", "smtp.example.com")
    monkeypatch.setenv("SMTP_FROM_EMAIL", "no-reply@example.com")
    monkeypatch.setenv("SMTP_USER", "mailer")
    monkeypatch.setenv("SMTP_PASSWORD", "secret")
    monkeypatch.setenv("FRONTEND_URL", "https://portal.example.com/")


def test_build_frontend_link(monkeypatch):
    monkeypatch.setenv("FRONTEND_URL", "https://portal.example.com/")
    link = email_service._build_frontend_link("/verify-email", "abc")
    assert link == "https://portal.example.com/verify-email?token=abc"


def test_send_email_requires_configuration(monkeypatch):
    monkeypatch.delenv("SMTP_HOST", raising=False)
    with pytest.raises(RuntimeError, match="SMTP is not configured"):
        email_service.send_verify_email("a@example.com", None, "abc")


def test_send_verify_email_uses_bounded_timeout(monkeypatch):
    _configure_smtp(monkeypatch)
    monkeypatch.setenv("SMTP_TIMEOUT_SECONDS", "4")

    with patch("app.services.email_service.smtplib.SMTP") as smtp_cls:
        smtp = MagicMock()
        smtp_cls.return_value.__enter__.return_value = smtp
        email_service.send_verify_email("a@example.com", "Ada", "abc")

    smtp_cls.assert_called_once_with("smtp.example.com", 587, timeout=4.0)
    smtp.starttls.assert_called_once()
    smtp.login.assert_called_once_with("mailer", "secret")
    message = smtp.send_message.call_args.args[0]
    assert message["To"] == "a@example.com"
    assert "https://portal.example.com/verify-email?token=abc" in message.get_body(("plain",)).get_content()


def test_notify_login_swallows_send_errors(monkeypatch):
    with patch("app.services.email_service.send_login_notification", side_effect=OSError("unreachable")) as send:
        email_service.notify_login("a@example.com", "Ada", "10.0.0.1", "curl/8.0")
    send.assert_called_once()
