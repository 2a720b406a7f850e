"""
Email Service
=============

Transactional emails rendered from Jinja2 templates and delivered over SMTP.

When `email.enabled` is false (development, tests) messages are logged
instead of sent. Delivery failures are logged and reported as False; they
never abort the auth flow that triggered them.
"""

import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from typing import Optional, Dict, Any

from jinja2 import Environment, FileSystemLoader, select_autoescape

from src.utils.config_loader import ConfigLoader
from src.utils.time import now_utc

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(["html"]),
)


def render_template(name: str, /, **context: Any) -> str:
    cfg = ConfigLoader()
    context.setdefault("app_name", cfg.get("app.name", "Nog"))
    context.setdefault("app_url", cfg.get("app.url", "http://localhost:3000"))
    return _env.get_template(f"{name}.html").render(**context)


def _create_connection(email_cfg: Dict[str, Any]) -> smtplib.SMTP:
    server = smtplib.SMTP(email_cfg.get("smtp_host", "localhost"), int(email_cfg.get("smtp_port", 587)), timeout=15)
    if email_cfg.get("use_tls", True):
        server.starttls(context=ssl.create_default_context())
    if email_cfg.get("smtp_user") and email_cfg.get("smtp_password"):
        server.login(email_cfg["smtp_user"], email_cfg["smtp_password"])
    return server


def send_email(to: str, subject: str, html: str) -> bool:
    """
    Send an HTML email

    Returns:
        True if the message was delivered (or logged in disabled mode)
    """
    email_cfg = ConfigLoader().get_email_config()

    if not email_cfg.get("enabled", False):
        logger.info(f"📧 [email disabled] to={to} subject={subject!r}")
        logger.debug(html)
        return True

    msg = MIMEMultipart("alternative")
    msg["From"] = f"{email_cfg.get('from_name', 'Nog')} <{email_cfg.get('from_address')}>"
    msg["To"] = to
    msg["Subject"] = subject
    msg.attach(MIMEText(html, "html", "utf-8"))

    try:
        with _create_connection(email_cfg) as server:
            server.send_message(msg)
        logger.info(f"📧 Email sent to {to}: {subject}")
        return True
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"❌ Failed to send email to {to}: {e}")
        return False


def send_verification_email(user, url: str) -> bool:
    html = render_template("verify_email", name=user.name, url=url)
    return send_email(user.email, "Verify your email address", html)


def send_change_email_verification(user, new_email: str, url: str) -> bool:
    html = render_template("verify_email", name=user.name, url=url, new_email=new_email)
    return send_email(new_email, "Confirm your new email address", html)


def send_reset_password_email(user, url: str) -> bool:
    html = render_template("reset_password", name=user.name, url=url)
    return send_email(user.email, "Reset your password", html)


def send_welcome_email(user) -> bool:
    html = render_template("welcome", name=user.name)
    return send_email(user.email, "Welcome!", html)


def send_password_changed_email(user) -> bool:
    html = render_template(
        "password_changed",
        name=user.name,
        timestamp=now_utc().strftime("%Y-%m-%d %H:%M UTC"),
    )
    return send_email(user.email, "Your password has been changed", html)


def send_new_login_email(user, device: Dict[str, Any], secure_account_link: Optional[str] = None) -> bool:
    cfg = ConfigLoader()
    html = render_template(
        "new_login",
        name=user.name,
        browser=device.get("browser"),
        os=device.get("os"),
        location=device.get("location", "Unknown"),
        ip_address=device.get("ip_address", "Unknown"),
        timestamp=now_utc().strftime("%Y-%m-%d %H:%M UTC"),
        secure_account_link=secure_account_link or f"{cfg.get('app.url', '')}/settings/account",
    )
    return send_email(user.email, "New login detected", html)
