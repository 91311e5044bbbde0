from __future__ import annotations

import smtplib
from unittest.mock import patch

import pytest

from modules.orders.exceptions import NotificationFailed
from modules.orders.notifications import EmailDeliveryNotifier

pytestmark = pytest.mark.unit


@pytest.fixture()
def notifier():
    return EmailDeliveryNotifier()


class TestEmailDeliveryNotifier:
    def test_otp_email(self, notifier, dispatched_order, customer, mailoutbox):
        notifier.send_delivery_otp(dispatched_order, "042917")

        assert len(mailoutbox) == 1
        mail = mailoutbox[0]
        assert mail.to == [customer.email]
        assert dispatched_order.order_number in mail.subject
        assert "042917" in mail.body
        assert "30 minutes" in mail.body
        html, mimetype = mail.alternatives[0]
        assert mimetype == "text/html"
        assert "042917" in html

    def test_out_for_delivery_email_names_courier(self, notifier, dispatched_order, mailoutbox):
        notifier.send_out_for_delivery(dispatched_order)

        body = mailoutbox[0].body
        assert "out for delivery" in body
        assert "Vikram Singh" in body
        assert "+91 98100 00030" in body

    def test_out_for_delivery_email_without_courier(
        self, notifier, self_delivered_order, mailoutbox
    ):
        notifier.send_out_for_delivery(self_delivered_order)
        assert "Delivery person:" not in mailoutbox[0].body

    def test_confirmation_email_lists_items(self, notifier, order, mailoutbox):
        notifier.send_delivery_confirmation(order)

        body = mailoutbox[0].body
        assert "has been delivered" in body
        assert "Basmati Rice 5kg x2" in body
        assert "500.00" in body

    def test_missing_recipient(self, notifier, order, customer, mailoutbox):
        customer.email = ""
        customer.save(update_fields=["email"])
        order.customer.email = ""

        with pytest.raises(NotificationFailed):
            notifier.send_delivery_otp(order, "123456")
        assert mailoutbox == []

    def test_smtp_error_becomes_notification_failed(self, notifier, order):
        with patch(
            "modules.orders.notifications.send_mail",
            side_effect=smtplib.SMTPServerDisconnected("gone"),
        ):
            with pytest.raises(NotificationFailed):
                notifier.send_delivery_otp(order, "123456")

    def test_connection_error_becomes_notification_failed(self, notifier, order):
        with patch(
            "modules.orders.notifications.send_mail",
            side_effect=ConnectionRefusedError(),
        ):
            with pytest.raises(NotificationFailed):
                notifier.send_out_for_delivery(order)
