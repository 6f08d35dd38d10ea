"""
Customer email notifications.

NOTIFICATION_DRIVER picks the transport: ``mock`` only logs, ``email`` sends
through SMTP with aiosmtplib. Sending never raises; callers get a bool.
"""

from email.message import EmailMessage
from typing import List, Optional
import aiosmtplib
from framework.config import settings
from framework.logging.logger import get_logger

logger = get_logger("notifier")


def build_message(email_to: str, subject: str, lines: List[str]) -> EmailMessage:
    message = EmailMessage()
    message["From"] = settings.SMTP_FROM or settings.SMTP_USER
    message["To"] = email_to
    message["Subject"] = f"[{settings.APP_NAME}] {subject}"
    message.set_content("\n".join(lines) + "\n")
    return message


async def send_email(email_to: Optional[str], subject: str, lines: List[str]) -> bool:
    """False when nothing was sent (no address, unknown driver, SMTP missing or failing)."""
    if not email_to:
        return False

    driver = (settings.NOTIFICATION_DRIVER or "mock").lower()
    if driver == "mock":
        logger.info(f"[MOCK] email to={email_to} subject={subject!r}")
        return True
    if driver != "email":
        logger.warning(f"Unsupported NOTIFICATION_DRIVER={settings.NOTIFICATION_DRIVER!r}, email to {email_to} dropped")
        return False
    if not (settings.SMTP_HOST and settings.SMTP_USER and settings.SMTP_PASSWORD):
        logger.warning("SMTP_HOST/SMTP_USER/SMTP_PASSWORD not set, email dropped")
        return False

    try:
        await aiosmtplib.send(
            build_message(email_to, subject, lines),
            hostname=settings.SMTP_HOST,
            port=settings.SMTP_PORT or 587,
            username=settings.SMTP_USER,
            password=settings.SMTP_PASSWORD,
            start_tls=True,
        )
    except Exception as e:
        logger.warning(f"Failed to send email to={email_to}: {str(e)}")
        return False

    logger.info(f"Email sent to={email_to} subject={subject!r}")
    return True


async def notify_user_registered(email_to: Optional[str], username: str, full_name: Optional[str] = None) -> bool:
    name = full_name or username
    return await send_email(email_to, f"Welcome to the shop, {name}", [
        f"Hi {name},",
        "",
        f"Your account '{username}' is ready. Figures, merch and weekly coupons are waiting at:",
        settings.SHOP_URL,
        "",
        "Collect a coupon from the coupon page before your first order.",
    ])
