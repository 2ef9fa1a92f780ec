"""Tests for low-stock notifications and the email task."""
import smtplib
from unittest.mock import MagicMock, patch

import pytest
from celery.exceptions import Retry

from marketplace.services.email_service import build_low_stock_email, send_email
from marketplace.services.notifier import (
    CeleryLowStockNotifier,
    LoggingLowStockNotifier,
    LowStockNotice,
    get_notifier,
)
from marketplace.tasks.notification_tasks import send_low_stock_email


NOTICE = LowStockNotice(
    owner_contact="farmer@example.com",
    owner_display_name="Green Farm",
    product_name="Longan",
    current_stock=4.5,
    threshold=7,
)


def test_build_low_stock_email():
    message = build_low_stock_email(**NOTICE.model_dump())

    assert message["To"] == "farmer@example.com"
    assert message["Subject"] == "Low Stock Alert: Longan from Green Farm"

    text_body = message.get_body(preferencelist=("plain",)).get_content()
    assert "Dear Green Farm farmer" in text_body
    assert "Current Stock: 4.5 kg" in text_body
    assert "Low Stock Threshold: 7 kg" in text_body

    html_body = message.get_body(preferencelist=("html",)).get_content()
    assert "<strong>Longan</strong>" in html_body


def test_send_email_uses_smtp():
    message = build_low_stock_email(**NOTICE.model_dump())

    with patch("marketplace.services.email_service.smtplib.SMTP") as smtp_class:
        send_email(message)

    smtp = smtp_class.return_value.__enter__.return_value
    smtp.starttls.assert_called_once()
    smtp.send_message.assert_called_once_with(message)


def test_celery_notifier_queues_task():
    with patch("marketplace.tasks.notification_tasks.send_low_stock_email.delay") as delay:
        CeleryLowStockNotifier().notify(NOTICE)

    delay.assert_called_once_with(
        owner_contact="farmer@example.com",
        owner_display_name="Green Farm",
        product_name="Longan",
        current_stock=4.5,
        threshold=7.0,
    )


def test_logging_notifier_does_not_raise():
    LoggingLowStockNotifier().notify(NOTICE)


def test_get_notifier_follows_setting():
    # Notifications are disabled in the test environment
    assert isinstance(get_notifier(), LoggingLowStockNotifier)

    with patch("marketplace.services.notifier.get_settings") as get_settings:
        get_settings.return_value = MagicMock(NOTIFICATIONS_ENABLED=True)
        assert isinstance(get_notifier(), CeleryLowStockNotifier)


def test_task_sends_email():
    with patch("marketplace.tasks.notification_tasks.send_email") as send:
        result = send_low_stock_email(**NOTICE.model_dump())

    assert result == {"status": "sent", "to": "farmer@example.com", "product_name": "Longan"}
    sent = send.call_args[0][0]
    assert sent["To"] == "farmer@example.com"


def test_task_retries_on_smtp_failure():
    error = smtplib.SMTPServerDisconnected("connection lost")

    with patch("marketplace.tasks.notification_tasks.send_email", side_effect=error), \
            patch.object(send_low_stock_email, "retry", side_effect=Retry()) as retry:
        with pytest.raises(Retry):
            send_low_stock_email(**NOTICE.model_dump())

    retry.assert_called_once_with(exc=error, countdown=60)
