# Overview: Outbound email over SMTP plus the order status templates.

import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart

from flask import current_app


def mail_configured() -> bool:
    cfg = current_app.config
    return bool(cfg.get("MAIL_ENABLED") and cfg.get("MAIL_SERVER"))


def send_email(to_email: str, subject: str, body_html: str) -> bool | None:
    """
    Sends an email using SMTP.

    Returns True on success, False on failure, None when mail is not
    configured (nothing was attempted).
    """
    logger = current_app.logger
    if not mail_configured():
        logger.debug("Mail not configured; skipping email to %s", to_email)
        return None

    cfg = current_app.config
    sender = cfg.get("MAIL_DEFAULT_SENDER")

    message = MIMEMultipart("alternative")
    message["Subject"] = subject
    message["From"] = sender
    message["To"] = to_email
    message.attach(MIMEText(body_html, "html"))

    try:
        with smtplib.SMTP(cfg["MAIL_SERVER"], cfg.get("MAIL_PORT", 587), timeout=30) as server:
            if cfg.get("MAIL_USE_TLS", True):
                server.starttls()
            if cfg.get("MAIL_USERNAME"):
                server.login(cfg["MAIL_USERNAME"], cfg.get("MAIL_PASSWORD") or "")
            server.sendmail(sender, [to_email], message.as_string())
        logger.info("Email sent successfully to %s", to_email)
        return True
    except (smtplib.SMTPException, OSError) as e:
        logger.error("Failed to send email to %s: %s", to_email, e)
        return False


# Email Templates

STATUS_HEADLINES = {
    "PENDING": "has been received",
    "CONFIRMED": "has been confirmed",
    "PROCESSING": "is being processed",
    "READY_FOR_DISPATCH": "is ready for dispatch",
    "IN_TRANSIT": "is on its way",
    "DELIVERED": "has been delivered",
    "CANCELLED": "has been cancelled",
    "RETURNED": "has been returned",
}


def _status_label(status: str) -> str:
    return status.replace("_", " ").title()


def customer_status_email(order, status: str) -> tuple[str, str]:
    """Generate the customer-facing order status email. Returns (subject, html)."""
    headline = STATUS_HEADLINES.get(status, f"is now {_status_label(status)}")
    subject = f"Your order {order.order_number} {headline}"

    tracking = ""
    if order.tracking_number:
        tracking = f"<p>Tracking number: <strong>{order.tracking_number}</strong></p>"

    body = f"""
    <html>
    <body>
        <h2>Order {order.order_number}</h2>
        <p>Hello {order.customer_name},</p>
        <p>Your order {headline}.</p>
        <p>Current status: <strong>{_status_label(status)}</strong></p>
        {tracking}
        <p>Thank you for shopping with {order.merchant.business_name if order.merchant else "us"}.</p>
        <p>SJFulfillment</p>
    </body>
    </html>
    """
    return subject, body


def merchant_status_email(order, status: str) -> tuple[str, str]:
    """Generate the merchant-admin order status email. Returns (subject, html)."""
    subject = f"Order {order.order_number} status: {_status_label(status)}"

    body = f"""
    <html>
    <body>
        <h2>Order Status Update</h2>
        <p>Order <strong>{order.order_number}</strong> for {order.customer_name}
        is now <strong>{_status_label(status)}</strong>.</p>
        <ul>
            <li>Order value: {order.order_value_cents / 100:,.2f}</li>
            <li>Delivery fee: {order.delivery_fee_cents / 100:,.2f}</li>
            <li>Total: {order.total_amount_cents / 100:,.2f}</li>
        </ul>
        <p>SJFulfillment</p>
    </body>
    </html>
    """
    return subject, body
