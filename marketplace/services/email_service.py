from email.message import EmailMessage
import smtplib
import logging

from marketplace.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


def build_low_stock_email(
    owner_contact: str,
    owner_display_name: str,
    product_name: str,
    current_stock: float,
    threshold: float,
) -> EmailMessage:
    """Render the low-stock alert sent to a villager."""
    message = EmailMessage()
    message["From"] = settings.MAIL_FROM
    message["To"] = owner_contact
    message["Subject"] = f"Low Stock Alert: {product_name} from {owner_display_name}"

    message.set_content(
        f"Dear {owner_display_name} farmer,\n\n"
        f"Your product {product_name} has reached a low stock level.\n"
        f"Current Stock: {current_stock:g} kg\n"
        f"Low Stock Threshold: {threshold:g} kg\n\n"
        "Please consider restocking your product to continue selling on our platform.\n\n"
        "The Lung Chaing Farm Team\n"
    )
    message.add_alternative(
        f"""
        <p>Dear {owner_display_name} farmer,</p>
        <p>This is an automated alert from Lung Chaing Farm marketplace.</p>
        <p>Your product <strong>{product_name}</strong> has reached a low stock level.</p>
        <p>Current Stock: <strong>{current_stock:g} kg</strong></p>
        <p>Low Stock Threshold: <strong>{threshold:g} kg</strong></p>
        <p>Please consider restocking your product to continue selling on our platform.</p>
        <p>Thank you,</p>
        <p>The Lung Chaing Farm Team</p>
        """,
        subtype="html",
    )
    return message


def send_email(message: EmailMessage) -> None:
    """
    Send a message through the configured SMTP server.

    Raises:
        smtplib.SMTPException, OSError: If delivery fails
    """
    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=30) as smtp:
        if settings.SMTP_USE_TLS:
            smtp.starttls()
        if settings.SMTP_USERNAME:
            smtp.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD or "")
        smtp.send_message(message)

    logger.info(f"Email sent to {message['To']}: {message['Subject']}")
