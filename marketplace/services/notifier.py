from abc import ABC, abstractmethod
import logging

from pydantic import BaseModel

from marketplace.config import get_settings

logger = logging.getLogger(__name__)


class LowStockNotice(BaseModel):
    """What the owner of a product is told when it drops to its low-stock threshold."""
    owner_contact: str
    owner_display_name: str
    product_name: str
    current_stock: float
    threshold: float


class LowStockNotifier(ABC):
    """Delivers low-stock notices to product owners."""

    @abstractmethod
    def notify(self, notice: LowStockNotice) -> None:
        """
        Deliver a notice.

        Implementations may raise; the inventory engine logs and swallows
        any error so a failed delivery never affects the purchase.
        """
        pass


class CeleryLowStockNotifier(LowStockNotifier):
    """Queues the alert email on the Celery worker."""

    def notify(self, notice: LowStockNotice) -> None:
        from marketplace.tasks.notification_tasks import send_low_stock_email

        send_low_stock_email.delay(**notice.model_dump())
        logger.info(f"Queued low-stock email for '{notice.product_name}' to {notice.owner_contact}")


class LoggingLowStockNotifier(LowStockNotifier):
    """Only logs the notice. Used when notifications are switched off."""

    def notify(self, notice: LowStockNotice) -> None:
        logger.info(
            f"Low stock: '{notice.product_name}' of {notice.owner_display_name} "
            f"at {notice.current_stock:g}kg (threshold {notice.threshold:g}kg)"
        )


def get_notifier() -> LowStockNotifier:
    """Notifier selected by the NOTIFICATIONS_ENABLED setting."""
    if get_settings().NOTIFICATIONS_ENABLED:
        return CeleryLowStockNotifier()
    return LoggingLowStockNotifier()
