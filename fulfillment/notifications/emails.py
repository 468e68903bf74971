import html
import smtplib
from email.mime.text import MIMEText
from typing import Tuple

from fulfillment.core.config import settings

TRACKING_URLS = {
    "USPS": "https://tools.usps.com/go/TrackConfirmAction?tLabels={number}",
    "FEDEX": "https://www.fedex.com/fedextrack/?trknbr={number}",
    "UPS": "https://www.ups.com/track?tracknum={number}",
    "DHL": "https://www.dhl.com/en/express/tracking.html?AWB={number}",
}

SUBJECTS = {
    "in_transit": "Your order is being prepared for shipment - {order_number}",
    "shipped": "Your order has shipped! - {order_number}",
    "out_for_delivery": "Your order is out for delivery! - {order_number}",
    "delivered": "Your order has been delivered! - {order_number}",
}

MESSAGES = {
    "in_transit": ("Your order is being prepared for shipment",
                   "We have received your order and it is being prepared for shipment. "
                   "You will receive another email when your order ships."),
    "shipped": ("Your order has shipped!",
                "Great news! Your order has shipped and is on its way to you."),
    "out_for_delivery": ("Your order is out for delivery!",
                         "Your order is out for delivery and should arrive soon."),
    "delivered": ("Your order has been delivered!",
                  "Your order has been delivered to your address. We hope you enjoy your purchase!"),
}


def tracking_url(carrier: str, number: str) -> str:
    template = TRACKING_URLS.get((carrier or "").upper())
    if template:
        return template.format(number=number)
    return f"https://www.google.com/search?q={carrier}+tracking+{number}"


def status_label(status: str) -> str:
    return status.replace("_", " ").title()


def build_tracking_email(notification) -> Tuple[str, str]:
    """Return (subject, html body) for a tracking notification."""
    order_number = notification.order_number or str(notification.order_id)
    subject = SUBJECTS.get(notification.status, "Order status updated - {order_number}").format(order_number=order_number)
    heading, message = MESSAGES.get(notification.status, ("Order status updated", "Your order status has been updated."))
    url = tracking_url(notification.carrier, notification.tracking_number)

    items_html = "".join(
        f'<li style="margin-bottom:8px;"><strong>{html.escape(it.title)}</strong><br/>'
        f"Quantity: {it.qty}<br/>Price: ${it.unit_price_cents / 100:.2f}</li>"
        for it in notification.items
    )
    body = f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      <h2>{heading}</h2>
      <p>{message}</p>
      <div style="background-color: #f8f9fa; padding: 20px; border-radius: 8px; margin: 20px 0;">
        <h3 style="margin-top: 0;">Order Details</h3>
        <p><strong>Order Number:</strong> <span style="font-family:monospace;">{html.escape(order_number)}</span></p>
        <p><strong>Status:</strong> {status_label(notification.status)}</p>
        <p><strong>Carrier:</strong> {html.escape(notification.carrier)}</p>
        <p><strong>Tracking Number:</strong> <span style="font-family:monospace;">{html.escape(notification.tracking_number)}</span></p>
      </div>
      <p><a href="{html.escape(url)}">Track Your Package</a></p>
      <h3>Order Items:</h3>
      <ul style="padding-left: 20px;">{items_html}</ul>
      <hr/>
      <p>If you have any questions about your order, please reply to this email and include your order number.</p>
    </div>
    """
    return subject, body


def send_email(to: str, subject: str, body: str, subtype: str = "html"):
    msg = MIMEText(body, subtype)
    msg["Subject"] = subject
    msg["From"] = settings.FROM_EMAIL
    msg["To"] = to
    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT) as s:
        s.sendmail(settings.FROM_EMAIL, [to], msg.as_string())
