import smtplib
import logging

from marketplace.tasks.celery_app import celery_app
from marketplace.services.email_service import build_low_stock_email, send_email

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, name="send_low_stock_email", max_retries=3)
def send_low_stock_email(
    self,
    owner_contact: str,
    owner_display_name: str,
    product_name: str,
    current_stock: float,
    threshold: float,
) -> dict:
    """
    Background task emailing a villager that a product reached low stock.

    Delivery failures are retried by the worker with a 60 second countdown;
    the purchase that queued the task has already been committed.

    Returns:
        Dictionary with delivery result
    """
    logger.info(f"Sending low-stock email for '{product_name}' to {owner_contact}")

    message = build_low_stock_email(
        owner_contact=owner_contact,
        owner_display_name=owner_display_name,
        product_name=product_name,
        current_stock=current_stock,
        threshold=threshold,
    )

    try:
        send_email(message)
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Error sending low-stock email to {owner_contact}: {e}")
        raise self.retry(exc=e, countdown=60)

    return {
        "status": "sent",
        "to": owner_contact,
        "product_name": product_name,
    }
