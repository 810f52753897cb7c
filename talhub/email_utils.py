"""
Email Utilities
===============

Outgoing mail for case invitations and passwordless sign-in links.

Without SMTP credentials nothing is sent: the message is written to the log
so the link can still be followed during local development.
"""

import html
import logging
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional

from .config import get_settings

logger = logging.getLogger(__name__)


def _html(paragraphs) -> str:
    body = "\n".join(f"        <p>{p}</p>" for p in paragraphs)
    return (
        "<!DOCTYPE html>\n<html lang=\"en\">\n"
        "    <body style=\"font-family: Arial, sans-serif;\">\n"
        f"{body}\n"
        "    </body>\n</html>\n"
    )


def _deliver(message: MIMEMultipart, to_email: str) -> None:
    settings = get_settings()
    with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as server:
        if settings.smtp_use_tls:
            server.starttls()
        server.login(settings.smtp_user, settings.smtp_password)
        server.sendmail(settings.smtp_from, to_email, message.as_string())


def send_email(to_email: str, subject: str, html_body: str, text_body: Optional[str] = None) -> bool:
    """
    Send a multipart (text + HTML) email.

    Returns False when SMTP delivery fails; callers treat mail as
    best-effort and never fail the request over it.
    """
    settings = get_settings()
    if not settings.email_configured:
        logger.info(f"[DEV MODE] Email to {to_email}: {subject}")
        logger.info(f"[DEV MODE] {text_body or html_body[:200]}")
        return True

    message = MIMEMultipart("alternative")
    message["Subject"] = subject
    message["From"] = settings.smtp_from
    message["To"] = to_email
    if text_body:
        message.attach(MIMEText(text_body, "plain", "utf-8"))
    message.attach(MIMEText(html_body, "html", "utf-8"))

    try:
        _deliver(message, to_email)
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False
    logger.info(f"Email sent to {to_email}")
    return True


def send_invitation_email(to_email: str, case_title: str, role: str, link: str,
                          inviter_name: Optional[str] = None) -> bool:
    inviter = inviter_name or "A TAL Hub user"
    days = get_settings().invitation_expire_days
    html_body = _html([
        f"{html.escape(inviter)} invited you to join the case "
        f"<strong>{html.escape(case_title)}</strong> as {html.escape(role)}.",
        f"<a href=\"{html.escape(link)}\">Accept the invitation</a>",
        f"This invitation expires in {days} days.",
    ])
    text_body = (
        f"{inviter} invited you to join the case \"{case_title}\" as {role}.\n\n"
        f"Accept the invitation: {link}\n"
        f"This invitation expires in {days} days.\n"
    )
    return send_email(to_email, f"Invitation to {case_title} - TAL Hub", html_body, text_body)


def send_magic_link_email(to_email: str, link: str) -> bool:
    minutes = get_settings().magic_link_expire_minutes
    html_body = _html([
        f"<a href=\"{html.escape(link)}\">Sign in to TAL Hub</a>",
        f"This link is valid for {minutes} minutes. If you did not request it, ignore this email.",
    ])
    text_body = f"Sign in to TAL Hub: {link}\n\nThis link is valid for {minutes} minutes.\n"
    return send_email(to_email, "Your TAL Hub sign-in link", html_body, text_body)
