import logging
import smtplib
from email.message import EmailMessage
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from app.config import settings

logger = logging.getLogger(__name__)


def _build_frontend_link(path: str, token: str) -> str:
    base = f"{settings.FRONTEND_URL.rstrip('/')}/{path.lstrip('/')}"
    parsed = urlparse(base)
    query = dict(parse_qsl(parsed.query, keep_blank_values=True))
    query["token"] = token
    return urlunparse(parsed._replace(query=urlencode(query)))


def _send_email(to_email: str, subject: str, text_body: str, html_body: str | None = None) -> None:
    if not settings.SMTP_HOST or not settings.SMTP_FROM_EMAIL:
        raise RuntimeError("SMTP is not configured (SMTP_HOST and SMTP_FROM_EMAIL are required).")

    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = f"{settings.SMTP_FROM_NAME} <{settings.SMTP_FROM_EMAIL}>"
    message["To"] = to_email
    message.set_content(text_body)
    if html_body:
        message.add_alternative(html_body, subtype="html")

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=settings.SMTP_TIMEOUT_SECONDS) as smtp:
        smtp.ehlo()
        if settings.SMTP_USE_TLS:
            smtp.starttls()
            smtp.ehlo()
        if settings.SMTP_USER:
            smtp.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
        smtp.send_message(message)
    logger.info("Sent '%s' email", subject)


def _greeting_name(first_name: str | None) -> str:
    return first_name or "there"


def send_verify_email(to_email: str, first_name: str | None, token: str) -> None:
    link = _build_frontend_link(settings.EMAIL_VERIFY_PATH, token)
    name = _greeting_name(first_name)
    text = (
        f"Hi {name},\n\n"
        "Thank you for registering! Please confirm your email address by opening this link:\n"
        f"{link}\n\n"
        "This link will expire in 24 hours.\n"
        "If you did not create this account, ignore this message."
    )
    html = (
        f"<p>Hi {name},</p>"
        "<p>Thank you for registering! Please confirm your email address by clicking the link below:</p>"
        f"<p><a href=\"{link}\">Verify email</a></p>"
        "<p><strong>This link will expire in 24 hours.</strong></p>"
        "<p>If you did not create this account, ignore this message.</p>"
    )
    _send_email(to_email=to_email, subject="Verify your email address", text_body=text, html_body=html)


def send_password_reset_email(to_email: str, first_name: str | None, token: str) -> None:
    link = _build_frontend_link(settings.PASSWORD_RESET_PATH, token)
    name = _greeting_name(first_name)
    text = (
        f"Hi {name},\n\n"
        "You requested a password reset. Open this link to set a new password:\n"
        f"{link}\n\n"
        "This link will expire in 1 hour.\n"
        "If you did not request this, ignore this message."
    )
    html = (
        f"<p>Hi {name},</p>"
        "<p>You requested a password reset. Click the link below to set a new password:</p>"
        f"<p><a href=\"{link}\">Reset password</a></p>"
        "<p><strong>This link will expire in 1 hour.</strong></p>"
        "<p>If you did not request this, ignore this message.</p>"
    )
    _send_email(to_email=to_email, subject="Reset your password", text_body=text, html_body=html)


def send_login_notification(to_email: str, first_name: str | None, ip_address: str, user_agent: str) -> None:
    name = _greeting_name(first_name)
    text = (
        f"Hi {name},\n\n"
        "We detected a new login to your account:\n"
        f"IP address: {ip_address}\n"
        f"Device: {user_agent}\n\n"
        "If this was not you, reset your password and log out of all devices."
    )
    html = (
        f"<p>Hi {name},</p>"
        "<p>We detected a new login to your account:</p>"
        f"<p><strong>IP address:</strong> {ip_address}<br>"
        f"<strong>Device:</strong> {user_agent}</p>"
        "<p>If this was not you, reset your password and log out of all devices.</p>"
    )
    _send_email(to_email=to_email, subject="New login to your account", text_body=text, html_body=html)


def notify_login(to_email: str, first_name: str | None, ip_address: str, user_agent: str) -> None:
    """Background-task wrapper: a failed notification never affects the login."""
    try:
        send_login_notification(to_email, first_name, ip_address, user_agent)
    except Exception:
        logger.exception("Failed to send login notification")
