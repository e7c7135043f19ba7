import os
import html
import smtplib
import logging
from datetime import datetime, timedelta, timezone
from email.mime.text import MIMEText
from typing import Protocol

import resend

from . import config
from .models import Order
from .pricing import round2

logger = logging.getLogger(__name__)


class EmailSender(Protocol):
    def send(self, to: str, subject: str, html_body: str, scheduled_at: datetime | None = None) -> None:
        ...


def _from_address() -> str:
    return f"{config.SENDER_NAME} <{config.SENDER_EMAIL}>"


class SmtpEmailSender:
    """
    Send email via SMTP.

    Required env:
      SMTP_HOST

    Optional env:
      SMTP_PORT (default 587)
      SMTP_USER
      SMTP_PASS
      SMTP_USE_TLS (true/false)
      SMTP_USE_SSL (true/false)
      SMTP_USE_AUTH (true/false)
      SMTP_TIMEOUT (seconds, default 10)

    SMTP has no delayed delivery: a scheduled message is sent right away.
    """

    def __init__(self):
        self.host = os.getenv("SMTP_HOST")
        if not self.host:
            raise RuntimeError("SMTP_HOST is not set")
        self.port = int(os.getenv("SMTP_PORT", "587"))
        self.user = os.getenv("SMTP_USER", "")
        self.password = os.getenv("SMTP_PASS", "")
        self.use_tls = config.env_bool("SMTP_USE_TLS")
        self.use_ssl = config.env_bool("SMTP_USE_SSL")
        self.use_auth = config.env_bool("SMTP_USE_AUTH")
        self.timeout = float(os.getenv("SMTP_TIMEOUT", "10"))

    def send(self, to: str, subject: str, html_body: str, scheduled_at: datetime | None = None) -> None:
        if scheduled_at is not None:
            logger.info("SMTP cannot schedule, sending now to=%s subject=%s", to, subject)

        msg = MIMEText(html_body, "html", "utf-8")
        msg["Subject"] = subject
        msg["From"] = _from_address()
        msg["To"] = to

        try:
            if self.use_ssl:
                server = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
            else:
                server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)

            with server as s:
                s.ehlo()

                if self.use_tls and not self.use_ssl:
                    s.starttls()
                    s.ehlo()

                if self.use_auth:
                    if not self.user or not self.password:
                        raise RuntimeError("SMTP_USE_AUTH=true but SMTP_USER/SMTP_PASS not set")
                    s.login(self.user, self.password)

                s.sendmail(config.SENDER_EMAIL, [to], msg.as_string())

            logger.info("Email sent to=%s subject=%s", to, subject)

        except Exception:
            logger.exception("Email send failed to=%s", to)
            raise


class ResendEmailSender:
    """Send through the Resend API, which supports delayed delivery."""

    def __init__(self, api_key: str | None = None):
        self.api_key = (api_key if api_key is not None else config.RESEND_API_KEY).strip()
        if not self.api_key:
            raise RuntimeError("RESEND_API_KEY is not set")

    def send(self, to: str, subject: str, html_body: str, scheduled_at: datetime | None = None) -> None:
        params = {
            "from": _from_address(),
            "to": [to],
            "subject": subject,
            "html": html_body,
        }
        if scheduled_at is not None:
            params["scheduled_at"] = scheduled_at.isoformat()

        resend.api_key = self.api_key
        response = resend.Emails.send(params)
        if not isinstance(response, dict) or not response.get("id"):
            raise RuntimeError(f"Resend rejected email: {response!r}")
        logger.info("Email queued id=%s to=%s subject=%s", response["id"], to, subject)


class ConsoleEmailSender:
    """Local development: log instead of sending."""

    def send(self, to: str, subject: str, html_body: str, scheduled_at: datetime | None = None) -> None:
        logger.info("Email to=%s subject=%s scheduled_at=%s\n%s", to, subject, scheduled_at, html_body)


def get_email_sender(backend: str | None = None) -> EmailSender:
    backend = (backend or config.EMAIL_BACKEND).strip().lower()
    if backend == "smtp":
        return SmtpEmailSender()
    if backend == "resend":
        return ResendEmailSender()
    if backend == "console":
        return ConsoleEmailSender()
    raise RuntimeError(f"Unsupported EMAIL_BACKEND={backend}")


def _money(value) -> str:
    return f"{config.CURRENCY_SYMBOL}{round2(value or 0):.2f}"


def _items_table(order: Order) -> str:
    rows = "".join(
        "<tr>"
        f"<td>{html.escape(item.name)}</td>"
        f"<td>{item.quantity}</td>"
        f"<td>{_money(item.price)}</td>"
        "</tr>"
        for item in order.items
    )
    return f"<table><tr><th>Item</th><th>Qty</th><th>Price</th></tr>{rows}</table>"


def render_purchase_receipt(order: Order) -> str:
    return (
        "<h3>Thanks for your purchase!</h3>"
        f"<p>Order <b>#{order.id}</b> placed on {order.created_at:%Y-%m-%d}.</p>"
        f"{_items_table(order)}"
        f"<p>Items: {_money(order.items_price)}<br>"
        f"Tax: {_money(order.tax_price)}<br>"
        f"Shipping: {_money(order.shipping_price)}<br>"
        f"<b>Total: {_money(order.total_price)}</b></p>"
        f"<p><a href='{config.SERVER_URL}/account/orders/{order.id}'>View order</a></p>"
    )


def render_ask_review(order: Order) -> str:
    links = "".join(
        f"<li><a href='{config.SERVER_URL}/product/{html.escape(item.slug)}#reviews'>"
        f"{html.escape(item.name)}</a></li>"
        for item in order.items
    )
    return (
        "<h3>How did we do?</h3>"
        f"<p>Your order <b>#{order.id}</b> was delivered. Tell others what you think:</p>"
        f"<ul>{links}</ul>"
    )


def send_purchase_receipt(order: Order, sender: EmailSender) -> None:
    sender.send(
        to=order.user.email,
        subject="Order Confirmation",
        html_body=render_purchase_receipt(order),
    )


def send_ask_review_order_items(order: Order, sender: EmailSender, now: datetime | None = None) -> None:
    """Ask for reviews one day after delivery."""
    scheduled_at = (now or datetime.now(timezone.utc)) + timedelta(days=1)
    sender.send(
        to=order.user.email,
        subject="Review your order items",
        html_body=render_ask_review(order),
        scheduled_at=scheduled_at,
    )
