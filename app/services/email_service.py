"""
Email service for verification codes and portal login links.
Uses Flask-Mail for SMTP integration.
"""
import logging
from flask import current_app
from flask_mail import Mail, Message

logger = logging.getLogger(__name__)

mail = Mail()


def init_mail(app):
    """Initialize Flask-Mail with app."""
    mail.init_app(app)


def _mail_enabled() -> bool:
    """
    Check if mail is properly configured and enabled.
    Prevents 500 errors in dev or misconfigured environments.
    """
    cfg = current_app.config
    return bool(
        not cfg.get("MAIL_SUPPRESS_SEND", False)
        and cfg.get("MAIL_SERVER")
        and cfg.get("MAIL_USERNAME")
    )


def send_otp_email(to_email: str, code: str, ttl_minutes: int) -> bool:
    """
    Send a one-time verification code.

    Delivery failures are logged and reported as False; the caller's
    response does not depend on them, so a failed send reveals nothing
    about the address.

    Args:
        to_email: Recipient email
        code: Raw one-time code (never logged)
        ttl_minutes: Minutes until the code expires

    Returns:
        True if sent (or mail disabled), False otherwise
    """
    try:
        if not _mail_enabled():
            logger.warning(f"[MAIL DISABLED] Verification code email skipped for {to_email}")
            return True

        product = current_app.config.get('PRODUCT_NAME', 'Agency Portal')

        html_body = f"""
        <!DOCTYPE html>
        <html>
        <head><meta charset="UTF-8"></head>
        <body style="font-family: Arial, sans-serif; color: #333;">
            <div style="max-width: 600px; margin: auto; padding: 20px;">
                <h2>{product} verification code</h2>
                <p>Use this code to verify your email address:</p>
                <p style="font-size: 28px; font-weight: bold; letter-spacing: 6px;">{code}</p>
                <p style="font-size: 13px; color: #666;">
                    The code expires in {ttl_minutes} minutes. If you did not request it, ignore this email.
                </p>
            </div>
        </body>
        </html>
        """

        text_body = f"""
Your {product} verification code is: {code}

The code expires in {ttl_minutes} minutes.
If you did not request it, ignore this email.
"""

        msg = Message(
            subject=f"{product} verification code",
            recipients=[to_email],
            body=text_body,
            html=html_body,
        )
        mail.send(msg)
        logger.info(f"[EMAIL] Verification code sent to {to_email}")
        return True

    except Exception:
        logger.exception(f"[EMAIL] Failed to send verification code to {to_email}")
        return False


def send_portal_link_email(to_email: str, client_name: str, link: str, ttl_minutes: int) -> bool:
    """
    Send a portal client their single-use login link.

    Args:
        to_email: Recipient email
        client_name: Portal client display name
        link: Full login URL including the raw token (never logged)
        ttl_minutes: Minutes until the link expires

    Returns:
        True if sent (or mail disabled), False otherwise
    """
    try:
        if not _mail_enabled():
            logger.warning(f"[MAIL DISABLED] Portal login link email skipped for {to_email}")
            return True

        product = current_app.config.get('PRODUCT_NAME', 'Agency Portal')

        html_body = f"""
        <!DOCTYPE html>
        <html>
        <head><meta charset="UTF-8"></head>
        <body style="font-family: Arial, sans-serif; color: #333;">
            <div style="max-width: 600px; margin: auto; padding: 20px;">
                <h2>Hello {client_name},</h2>
                <p>Use the button below to sign in to your {product} client portal.</p>
                <p><a href="{link}" style="display: inline-block; padding: 12px 24px; background: #2563eb;
                    color: #fff; text-decoration: none; border-radius: 6px;">Sign in</a></p>
                <p style="font-size: 13px; color: #666;">
                    The link works once and expires in {ttl_minutes} minutes.
                </p>
            </div>
        </body>
        </html>
        """

        text_body = f"""
Hello {client_name},

Sign in to your {product} client portal:
{link}

The link works once and expires in {ttl_minutes} minutes.
"""

        msg = Message(
            subject=f"Your {product} portal login link",
            recipients=[to_email],
            body=text_body,
            html=html_body,
        )
        mail.send(msg)
        logger.info(f"[EMAIL] Portal login link sent to {to_email}")
        return True

    except Exception:
        logger.exception(f"[EMAIL] Failed to send portal login link to {to_email}")
        return False
